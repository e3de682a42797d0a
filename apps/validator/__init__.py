"""Validation of raw contest records."""

from apps.validator.validator import (
    DataValidator,
    RecordValidation,
    ValidationIssue,
    ValidationResult,
    levenshtein,
    similarity,
)

__all__ = [
    "DataValidator",
    "RecordValidation",
    "ValidationIssue",
    "ValidationResult",
    "levenshtein",
    "similarity",
]
