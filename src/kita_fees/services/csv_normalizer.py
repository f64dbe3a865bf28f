"""CSV normalization utilities for robust import handling"""
import csv
import io
import re
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional


SEPARATORS = [";", ",", "\t"]
DEFAULT_SEPARATOR = ";"

# German exports first, then ISO, then both with a time component
DATE_FORMATS = [
    "%d.%m.%Y",
    "%d.%m.%y",
    "%Y-%m-%d",
    "%d.%m.%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%Y-%m-%d %H:%M",
]

ENCODINGS = ["utf-8-sig", "cp1252"]


def decode_csv_content(content: bytes) -> str:
    for encoding in ENCODINGS:
        try:
            return content.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue
    return content.decode("latin-1")


def detect_separator(text: str) -> str:
    """
    Pick the separator whose count is highest on the first line,
    with a bonus when the first five lines all agree.
    """
    lines = text.splitlines()[:5]
    if not lines:
        return DEFAULT_SEPARATOR

    best_separator = DEFAULT_SEPARATOR
    best_score = 0
    for separator in SEPARATORS:
        counts = [line.count(separator) for line in lines]
        if counts[0] == 0:
            continue
        score = counts[0]
        if all(c == counts[0] for c in counts):
            score += 10
        if score > best_score:
            best_score = score
            best_separator = separator
    return best_separator


def read_rows(text: str, separator: str) -> List[List[str]]:
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=separator, strict=False)
    rows = []
    for record in reader:
        fields = [field.strip() for field in record]
        if not any(fields):
            continue
        rows.append(fields)
    return rows


def parse_date(value: str) -> Optional[date]:
    """Parse a German or ISO date. Returns None for empty input, raises ValueError otherwise."""
    value = value.strip()
    if not value:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"cannot parse date: {value}")


def parse_int(value: str) -> Optional[int]:
    value = value.strip()
    if not value:
        return None

    decimal = value.replace(",", ".")
    if re.fullmatch(r"-?\d+(\.\d+)?", decimal):
        return int(Decimal(decimal).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    digits = re.sub(r"[^\d-]", "", value)
    if not digits or digits == "-":
        return None
    try:
        return int(digits)
    except ValueError:
        return None


def normalize_header(header: str) -> str:
    return header.strip().lower()


def normalize_text(text: str) -> str:
    return text.strip()
