"""Target fields of the children import and header auto-detection.

``auto_detect`` is pure: it only looks at the header row and returns a
fresh mapping ``field key -> column index``. Every suggestion stays
user-editable in the mapping stage.
"""
from dataclasses import dataclass
from typing import Dict, List, Tuple

from src.kita_fees.services.csv_normalizer import normalize_header


@dataclass(frozen=True)
class SystemField:
    key: str
    label: str
    group: str
    required: bool = False


CHILD_FIELDS: List[SystemField] = [
    SystemField("memberNumber", "Mitgliedsnummer", "child", required=True),
    SystemField("firstName", "Vorname", "child", required=True),
    SystemField("lastName", "Nachname", "child", required=True),
    SystemField("birthDate", "Geburtsdatum", "child", required=True),
    SystemField("entryDate", "Eintrittsdatum", "child", required=True),
    SystemField("street", "Straße", "child"),
    SystemField("streetNo", "Hausnummer", "child"),
    SystemField("postalCode", "PLZ", "child"),
    SystemField("city", "Ort", "child"),
    SystemField("legalHours", "Rechtsanspruch (Std.)", "child"),
    SystemField("careHours", "Betreuungszeit (Std.)", "child"),
]


def _parent_fields(slot: int) -> List[SystemField]:
    group = f"parent{slot}"
    return [
        SystemField(f"{group}FirstName", f"Elternteil {slot} Vorname", group),
        SystemField(f"{group}LastName", f"Elternteil {slot} Nachname", group),
        SystemField(f"{group}Email", f"Elternteil {slot} E-Mail", group),
        SystemField(f"{group}Phone", f"Elternteil {slot} Telefon", group),
    ]


PARENT_FIELDS: List[SystemField] = _parent_fields(1) + _parent_fields(2)

SYSTEM_FIELDS: List[SystemField] = CHILD_FIELDS + PARENT_FIELDS
SYSTEM_FIELD_KEYS = {f.key for f in SYSTEM_FIELDS}
FIELD_LABELS: Dict[str, str] = {f.key: f.label for f in SYSTEM_FIELDS}

# Only the member number blocks the preview: rows that merge parents into
# existing children need nothing else.
BLOCKING_FIELDS = ["memberNumber"]


CHILD_KEYWORDS: Dict[str, List[str]] = {
    "memberNumber": ["mitgliedsnummer", "mitgliedsnr", "mitglied", "member", "nr"],
    "firstName": ["vorname", "first name", "firstname"],
    "lastName": ["nachname", "familienname", "last name", "lastname", "surname"],
    "birthDate": ["geburtsdatum", "geburtstag", "geboren", "birth", "geb"],
    "entryDate": ["eintrittsdatum", "eintritt", "aufnahme", "entry"],
    "street": ["straße", "strasse", "street", "str."],
    "streetNo": ["hausnummer", "hausnr", "house number", "street no"],
    "postalCode": ["postleitzahl", "postal", "plz", "zip"],
    "city": ["wohnort", "stadt", "city", "ort"],
    "legalHours": ["rechtsanspruch", "legal hours", "anspruch"],
    "careHours": ["betreuungszeit", "betreuungsstunden", "care hours", "betreuung", "stunden"],
}

PARENT_PREFIXES: Dict[int, List[str]] = {
    1: ["elternteil 1", "elternteil1", "eltern 1", "eltern1", "parent 1", "parent1", "mutter"],
    2: ["elternteil 2", "elternteil2", "eltern 2", "eltern2", "parent 2", "parent2", "vater"],
}

PARENT_FIELD_WORDS: Dict[str, List[str]] = {
    "FirstName": ["vorname", "first name", "firstname"],
    "LastName": ["nachname", "last name", "lastname"],
    "Email": ["e-mail", "email", "mail"],
    "Phone": ["telefon", "phone", "handy", "mobil", "tel"],
}


def _parent_keywords() -> Dict[str, List[str]]:
    keywords: Dict[str, List[str]] = {}
    for slot, prefixes in PARENT_PREFIXES.items():
        for suffix, words in PARENT_FIELD_WORDS.items():
            key = f"parent{slot}{suffix}"
            keywords[key] = [
                f"{prefix}{sep}{word}"
                for prefix in prefixes
                for word in words
                for sep in (" ", "_", " - ")
            ]
    return keywords


# Parent fields come first so that equally long matches go to them
FIELD_KEYWORDS: Dict[str, List[str]] = {**_parent_keywords(), **CHILD_KEYWORDS}


def best_match(header: str, assigned: set) -> Tuple[str, str]:
    """Return (field, keyword) with the longest keyword contained in the header.

    Fields in ``assigned`` are skipped. Returns ("", "") when nothing matches.
    """
    normalized = normalize_header(header)
    best_field = ""
    best_keyword = ""
    for field, keywords in FIELD_KEYWORDS.items():
        if field in assigned:
            continue
        for keyword in keywords:
            if keyword in normalized and len(keyword) > len(best_keyword):
                best_field = field
                best_keyword = keyword
    return best_field, best_keyword


def auto_detect(headers: List[str]) -> Dict[str, int]:
    mapping: Dict[str, int] = {}
    for column, header in enumerate(headers):
        field, _ = best_match(header, set(mapping))
        if field:
            mapping[field] = column
    return mapping


def missing_required_mapping(mapping: Dict[str, int]) -> List[str]:
    """Required fields (new children need all of them) that are not mapped."""
    return [f.key for f in SYSTEM_FIELDS if f.required and f.key not in mapping]


def blocking_missing_mapping(mapping: Dict[str, int]) -> List[str]:
    return [key for key in BLOCKING_FIELDS if key not in mapping]
