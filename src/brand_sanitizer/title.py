"""Product title camouflage.

Brand names in titles are replaced with short abbreviations so the listing
does not carry the trademark in plain text. Replacement is whole-word and
case-insensitive, longest brand first so "air jordan" wins over "jordan".
"""

import re

BRAND_ABBREVIATIONS: dict[str, str] = {
    # Sportswear
    "nike": "NK",
    "adidas": "AD",
    "puma": "PM",
    "reebok": "RB",
    "new balance": "NB",
    "under armour": "UA",
    "asics": "AS",
    "converse": "CV",
    "vans": "VN",
    "fila": "FL",
    "jordan": "JD",
    "air jordan": "AJ",
    # Luxury
    "gucci": "GC",
    "louis vuitton": "LV",
    "prada": "PR",
    "versace": "VS",
    "balenciaga": "BL",
    "off-white": "OW",
    # Common terms
    "original": "orig",
    "authentic": "auth",
    "premium": "prem",
    "limited edition": "ltd ed",
}


def _by_length(mapping: dict[str, str]) -> list[str]:
    return sorted(mapping, key=len, reverse=True)


def camouflage(title: str, mapping: dict[str, str] = BRAND_ABBREVIATIONS) -> str:
    """Replace brand names in ``title`` with their abbreviations.

    >>> camouflage("Nike Air Jordan 1 Retro High")
    'NK AJ 1 Retro High'
    """
    result = title
    for brand in _by_length(mapping):
        pattern = re.compile(rf"\b{re.escape(brand)}\b", re.IGNORECASE)
        result = pattern.sub(mapping[brand], result)
    return result


def detect_brands_in_title(title: str, mapping: dict[str, str] = BRAND_ABBREVIATIONS) -> list[str]:
    lower = title.lower()
    return [
        brand for brand in mapping
        if re.search(rf"\b{re.escape(brand)}\b", lower)
    ]


def reverse(title: str, mapping: dict[str, str] = BRAND_ABBREVIATIONS) -> str:
    """Expand abbreviations back to brand names (for debugging)."""
    result = title
    for brand, abbreviation in mapping.items():
        result = re.sub(rf"\b{re.escape(abbreviation)}\b", brand, result)
    return result
