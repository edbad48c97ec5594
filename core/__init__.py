"""Core domain logic for the family chronic-disease tracker.

This package contains the record store, audit trail, analytics and
reports, isolated from condition-specific adapters for easy testing and
reasoning.
"""
