import re


def normalize_document_number(value: str) -> str:
    """Keep only alphanumeric chars for document identifiers."""
    return re.sub(r"[^A-Za-z0-9]", "", (value or "").strip())


def normalize_phone(value: str) -> str:
    """Keep only digits."""
    return re.sub(r"\D", "", (value or "").strip())
