"""Synchronous input validation for the field-by-field proposal flow."""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
BR_DATE_RE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
_MONEY_NUMBER_RE = re.compile(r"\d[\d.,]*")

MIN_YEAR = 1900
MAX_YEAR = 2100


def is_valid_email(text: Optional[str]) -> bool:
    return bool(text) and bool(EMAIL_RE.match(text.strip()))


def parse_money(text: Optional[str]) -> Optional[Decimal]:
    """
    Parse a monetary amount typed in Brazilian or plain notation.

    "1.500,00" -> 1500.00, "1,500.00" -> 1500.00, "R$ 3000" -> 3000,
    "1500.5" -> 1500.50, "2.500" -> 2500. Returns None when there is no
    number, more than one ("3000 reais, 2 parcelas"), or a comma followed
    by more than two digits ("1,500").
    """
    if not text:
        return None
    numbers = _MONEY_NUMBER_RE.findall(text)
    if len(numbers) != 1:
        return None
    number = numbers[0].rstrip(".,")

    if "," in number and "." in number:
        # the last separator marks the cents, the other one groups thousands
        decimal_sep, group_sep = (",", ".") if number.rfind(",") > number.rfind(".") else (".", ",")
        integer, _, fraction = number.rpartition(decimal_sep)
        if decimal_sep in integer or len(fraction) > 2:
            return None
        normalized = f"{integer.replace(group_sep, '')}.{fraction}"
    elif number.count(",") > 1:
        normalized = number.replace(",", "")
    elif "," in number:
        integer, _, fraction = number.partition(",")
        if len(fraction) > 2:
            return None
        normalized = f"{integer}.{fraction}"
    elif number.count(".") > 1:
        normalized = number.replace(".", "")
    elif "." in number:
        integer, _, fraction = number.partition(".")
        # "2.500" groups thousands, "2.50" has cents
        normalized = f"{integer}{fraction}" if len(fraction) == 3 else number
    else:
        normalized = number

    try:
        amount = Decimal(normalized)
    except InvalidOperation:
        return None
    return amount.quantize(Decimal("0.01"))


def parse_br_date(text: Optional[str]) -> Optional[date]:
    """Strict DD/MM/YYYY; impossible calendar dates (31/02) are rejected."""
    if not text:
        return None
    match = BR_DATE_RE.match(text.strip())
    if not match:
        return None
    day, month, year = (int(part) for part in match.groups())
    if not MIN_YEAR <= year <= MAX_YEAR:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_flexible_date(text: Optional[str]) -> Optional[date]:
    """DD/MM/YYYY or ISO YYYY-MM-DD, as returned by the extraction model."""
    if not text:
        return None
    parsed = parse_br_date(text)
    if parsed:
        return parsed
    try:
        parsed = date.fromisoformat(text.strip()[:10])
    except ValueError:
        return None
    return parsed if MIN_YEAR <= parsed.year <= MAX_YEAR else None
