"""Contest classification and normalization."""

from apps.ai_processor.models import CanonicalRecord
from apps.ai_processor.service import (
    ContestProcessor,
    apply_versions,
    derive_status,
    get_ai_provider,
    make_identity_key,
)

__all__ = [
    "CanonicalRecord",
    "ContestProcessor",
    "apply_versions",
    "derive_status",
    "get_ai_provider",
    "make_identity_key",
]
