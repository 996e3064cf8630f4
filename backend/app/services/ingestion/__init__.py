from .ingestion_service import IngestionService
from .url_rules import detect_source_type, normalize_url, note_content_hash, validate_url

__all__ = [
    "IngestionService",
    "detect_source_type",
    "normalize_url",
    "note_content_hash",
    "validate_url",
]
