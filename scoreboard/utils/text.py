"""
Display-name helpers.

Names imported from spreadsheets sometimes reach the store as UTF-8 bytes
decoded one byte per character. Those are re-decoded for display.
"""


def repair_display_name(text: str, fallback: str = "") -> str:
    """Re-decode a Latin-1 mis-decoded UTF-8 string, leaving valid text unchanged."""
    if not text:
        return fallback
    try:
        return text.encode('latin-1').decode('utf-8')
    except (UnicodeEncodeError, UnicodeDecodeError):
        return text
