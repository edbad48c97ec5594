"""Sickle-cell tracking: labs, transfusions, admissions, exams and daily care."""
