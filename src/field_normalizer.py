"""
Turns loosely formatted OCR strings into canonical receipt values.

Dates are read UK-style: an ambiguous 03/04/2025 is 3 April, never 4 March.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from errors import ValidationError
from ocr_models import NormalizedFields, ReceiptFields


TWO_PLACES = Decimal("0.01")
MERCHANT_MAX_LENGTH = 80
FILENAME_MERCHANT_MAX_LENGTH = 50

MONTHS = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

_DAY_MONTH_YEAR = re.compile(r"\b(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2,4})\b")
_DAY_MONTHNAME_YEAR = re.compile(r"\b(\d{1,2})[ \-/.]([A-Za-z]{3,9})[ \-/.](\d{2,4})\b")
_YEAR_MONTH_DAY = re.compile(r"\b(\d{4})[/.\-](\d{1,2})[/.\-](\d{1,2})\b")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DECIMAL_COMMA = re.compile(r",\d{1,2}$")


def _year(raw: str) -> int:
    if len(raw) == 2:
        return 2000 + int(raw)
    return int(raw)


def _ymd(year: int, month: int, day: int) -> Optional[str]:
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _from_day_month_year(m: re.Match) -> Optional[str]:
    return _ymd(_year(m.group(3)), int(m.group(2)), int(m.group(1)))


def _from_day_monthname_year(m: re.Match) -> Optional[str]:
    month = MONTHS.get(m.group(2).lower())
    if not month:
        return None
    return _ymd(_year(m.group(3)), month, int(m.group(1)))


def _from_year_month_day(m: re.Match) -> Optional[str]:
    return _ymd(int(m.group(1)), int(m.group(2)), int(m.group(3)))


# priority order: day-first numeric, textual month, year-first numeric
DATE_PATTERNS = (
    (_DAY_MONTH_YEAR, _from_day_month_year),
    (_DAY_MONTHNAME_YEAR, _from_day_monthname_year),
    (_YEAR_MONTH_DAY, _from_year_month_day),
)


def _parse_iso(raw: str) -> Optional[str]:
    try:
        return date.fromisoformat(raw).isoformat()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(raw).date().isoformat()
    except ValueError:
        return None


def normalize_date(raw: Optional[str]) -> Optional[str]:
    """Return YYYY-MM-DD for a loosely formatted date, or None"""
    if not raw or not raw.strip():
        return None
    raw = raw.strip()

    direct = _parse_iso(raw)
    if direct:
        return direct

    for pattern, convert in DATE_PATTERNS:
        m = pattern.search(raw)
        if m:
            value = convert(m)
            if value:
                return value
    return None


def extract_date_from_free_text(text: Optional[str]) -> Optional[str]:
    """Find the first normalisable date in a blob of OCR text.

    Every match of the first pattern is tried before the second pattern is
    looked at, so a day-first date anywhere in the text beats a textual one.
    """
    if not text:
        return None
    for pattern, _ in DATE_PATTERNS:
        for m in pattern.finditer(text):
            value = normalize_date(m.group(0))
            if value:
                return value
    return None


def normalize_amount(raw: Optional[str]) -> Optional[Decimal]:
    """Parse currency-ish text into a non-negative two-place Decimal.

    Returns None when nothing numeric is left; never raises.
    """
    if raw is None:
        return None
    text = str(raw).strip()
    if "." not in text and _DECIMAL_COMMA.search(text):
        text = text.replace(",", ".")
    cleaned = re.sub(r"[^\d.\-]", "", text)
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    try:
        return abs(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # more digits than the decimal context can hold at two places
        return None


def format_amount(value: Optional[Decimal]) -> str:
    if value is None:
        return ""
    return f"{value:.2f}"


def sanitize_filename(merchant: Optional[str], date_str: Optional[str], total: Optional[str]) -> str:
    safe_merchant = re.sub(r"[^A-Za-z0-9_\- ]+", "", merchant or "")[:FILENAME_MERCHANT_MAX_LENGTH]
    if not safe_merchant.strip():
        safe_merchant = "receipt"
    safe_date = re.sub(r"[^0-9\-]", "", date_str or "")
    safe_total = re.sub(r"[^\d.]", "", total or "")

    name = safe_merchant
    if safe_date:
        name = f"{safe_date}_{name}"
    if safe_total:
        name = f"{name}_{safe_total}"
    return f"{name}.jpg"


def resolve_dated_on(raw: Optional[str], today: Optional[date] = None) -> str:
    """Use the given date only when it is a valid YYYY-MM-DD, else today"""
    today = today or date.today()
    if raw and _ISO_DATE.match(raw.strip()):
        try:
            return date.fromisoformat(raw.strip()).isoformat()
        except ValueError:
            pass
    return today.isoformat()


def normalize_fields(fields: ReceiptFields, today: Optional[date] = None,
                     merchant_max_length: int = MERCHANT_MAX_LENGTH) -> NormalizedFields:
    if not (fields.total or "").strip():
        raise ValidationError("Missing total")
    gross = normalize_amount(fields.total)
    if gross is None:
        raise ValidationError("Invalid total", details=fields.total)

    tax = normalize_amount(fields.vat) if fields.vat else None

    return NormalizedFields(
        merchant_name=(fields.merchant or "").strip()[:merchant_max_length],
        dated_on=resolve_dated_on(fields.date, today),
        gross_amount=gross,
        tax_amount=tax,
    )
