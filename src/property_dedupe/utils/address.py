"""Address normalization utilities."""

import re

# Common street type abbreviations
STREET_TYPES = {
    r"str\.?$": "strasse",
    r"\bstr\.?(?=\s|$)": "strasse",
    r"\bpl\.?(?=\s|$)": "platz",
    r"\bst\.?(?=\s|$)": "street",
    r"\brd\.?(?=\s|$)": "road",
    r"\bave\.?(?=\s|$)": "avenue",
}

_UMLAUTS = str.maketrans({"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss"})


def _fold(value: str) -> str:
    return value.casefold().translate(_UMLAUTS)


def normalize_street_name(street: str | None) -> str:
    """Normalize a street name for equality comparison.

    Handles:
    - "Hauptstr." -> "hauptstrasse"
    - "Hauptstraße" -> "hauptstrasse"
    - "Müller-Str. " -> "muellerstrasse"
    - "Main St" -> "main street"

    Args:
        street: Street name without house number.

    Returns:
        Normalized street name, or "" when nothing is left.
    """
    if not street:
        return ""

    addr = _fold(street)

    # Hyphens and slashes separate words ("Karl-Marx-Allee")
    addr = re.sub(r"[-/]", " ", addr)
    addr = " ".join(addr.split())

    for abbrev, full in STREET_TYPES.items():
        addr = re.sub(abbrev, full, addr)

    # "haupt strasse" and "hauptstrasse" are the same street
    addr = re.sub(r"\s+strasse\b", "strasse", addr)

    addr = re.sub(r"[^\w\s]", "", addr)
    return " ".join(addr.split())


def normalize_street_number(number: str | None) -> str:
    """Normalize a house number ("12 A" -> "12a")."""
    if not number:
        return ""
    return re.sub(r"[\s.\-]", "", number.casefold())


def normalize_zip_code(zip_code: str | None) -> str:
    """Normalize a postal code by removing whitespace and uppercasing."""
    if not zip_code:
        return ""
    return "".join(zip_code.split()).upper()


def normalize_city(city: str | None) -> str:
    """Normalize a city name ("München " -> "muenchen")."""
    if not city:
        return ""
    return " ".join(_fold(city).split())
