import re
from typing import Optional

_NON_DIGITS = re.compile(r"\D")

# Shortest digit string the suffix fallback will trust (area code + subscriber number).
MIN_FALLBACK_DIGITS = 10
COMPARE_TAIL_DIGITS = 10


def normalize_phone(raw: Optional[str]) -> str:
    """Keep only the digits: "+55 (11) 99999-9999" -> "5511999999999"."""
    if not raw:
        return ""
    return _NON_DIGITS.sub("", raw)


def phone_tail(digits: str, size: int = COMPARE_TAIL_DIGITS) -> str:
    return digits[-size:]


def is_suffix_match(stored: str, candidate: str) -> bool:
    """
    True when one normalized number ends with the other and the shorter one is long
    enough to identify a line, e.g. "5511999999999" vs "11999999999".
    """
    if not stored or not candidate:
        return False
    shorter, longer = sorted((stored, candidate), key=len)
    if len(shorter) < MIN_FALLBACK_DIGITS:
        return False
    return longer.endswith(shorter)


def whatsapp_address(digits: str) -> str:
    return f"whatsapp:+{normalize_phone(digits)}"


def format_br_phone(raw: Optional[str]) -> str:
    """Display form with the Brazilian country code, as the web app stores it."""
    digits = normalize_phone(raw)
    if not digits:
        return ""
    if digits.startswith("55") and len(digits) >= 12:
        return f"+{digits}"
    if len(digits) in (10, 11):
        return f"+55{digits}"
    return f"+{digits}"
