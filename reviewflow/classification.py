"""
Account-code classification.

A numeric code is truncated to its hundreds band (4234 -> 4200) and the band
is looked up in a fixed table. Classification is total: every input, valid
or not, yields exactly one category, with UNCLASSIFIED as the catch-all.

One shared table (DEFAULT_TABLE) serves every caller so band definitions
cannot drift between screens.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping

UNCLASSIFIED = "Unclassified"

# Chart-of-accounts expense bands
DEFAULT_BANDS: dict[int, str] = {
    4000: "PT dan PTT",
    4100: "PTT Project",
    4200: "Tenaga Ahli dan Labour Supply",
    4300: "Perjalanan Dinas",
    4400: "Operasional",
    4500: "Fasilitas dan Interen",
    4600: "Amortisasi",
    4700: "Kantor dan Diklat",
    4800: "Promosi",
    4900: "Umum",
}


def _parse_code(code: Any) -> int | None:
    """Coerce a code to a non-negative int, or None when malformed."""
    if code is None or isinstance(code, bool):
        return None
    if isinstance(code, int):
        value = code
    elif isinstance(code, float):
        if not math.isfinite(code) or not code.is_integer():
            return None
        value = int(code)
    elif isinstance(code, str):
        text = code.strip()
        if not (text.isascii() and text.isdigit()):
            return None
        value = int(text)
    else:
        return None
    return value if value >= 0 else None


def band_of(code: Any) -> int | None:
    """Hundreds band of a code, or None when the code is malformed."""
    value = _parse_code(code)
    if value is None:
        return None
    return (value // 100) * 100


@dataclass(frozen=True)
class CategoryTable:
    """Band -> category lookup with its inverse."""

    bands: Mapping[int, str] = field(default_factory=lambda: dict(DEFAULT_BANDS))

    def __post_init__(self) -> None:
        for band, category in self.bands.items():
            if band % 100 != 0:
                raise ValueError(f"Band {band} is not a multiple of 100")
            if category == UNCLASSIFIED:
                raise ValueError(f"{UNCLASSIFIED!r} is reserved for the catch-all")
        if len(set(self.bands.values())) != len(self.bands):
            raise ValueError("Each category must map to exactly one band")

    @property
    def categories(self) -> list[str]:
        return [self.bands[b] for b in sorted(self.bands)]

    def classify(self, code: Any) -> str:
        band = band_of(code)
        if band is None:
            return UNCLASSIFIED
        return self.bands.get(band, UNCLASSIFIED)

    def category_to_code(self, category: str) -> str | None:
        """Code to pre-fill when a category is picked directly (None for the catch-all)."""
        for band, name in self.bands.items():
            if name == category:
                return str(band)
        return None

    def classify_with_budget(self, code: Any, budgets: Mapping[str, float]) -> str:
        """
        Classify, but only into categories that have a budget.

        A category without a positive ceiling is not available for spending,
        so the code falls back to UNCLASSIFIED.
        """
        category = self.classify(code)
        if category == UNCLASSIFIED:
            return category
        ceiling = budgets.get(category) or 0
        return category if ceiling > 0 else UNCLASSIFIED


DEFAULT_TABLE = CategoryTable()


def classify(code: Any) -> str:
    return DEFAULT_TABLE.classify(code)


def category_to_code(category: str) -> str | None:
    return DEFAULT_TABLE.category_to_code(category)
