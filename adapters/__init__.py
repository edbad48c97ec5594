"""Condition-specific adapters producing typed payloads for the core record store."""
