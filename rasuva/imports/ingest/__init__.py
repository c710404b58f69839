from .extract import extract_json_from_text
from .normalize import normalize_import, parse_date_strict

__all__ = ["extract_json_from_text", "normalize_import", "parse_date_strict"]
