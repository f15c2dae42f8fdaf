"""Local date extraction.

Recognised forms, normalised to ``YYYY-MM-DD``:
  2024-03-12          ISO
  12/03/2024, 12/3/24 day-first, two-digit years read as 20xx
  12 marzo 2024       day + month name + year (Italian or English)
  March 12, 2024      month name + day + year (English order)

Impossible dates (31/02/2024) are skipped.
"""

from __future__ import annotations

import datetime
import re

from groundwork.annotate.base import LocalAnnotator
from groundwork.db.models import Chunk

_MONTHS: dict[str, int] = {
    "gennaio": 1, "febbraio": 2, "marzo": 3, "aprile": 4, "maggio": 5, "giugno": 6,
    "luglio": 7, "agosto": 8, "settembre": 9, "ottobre": 10, "novembre": 11, "dicembre": 12,
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}

_MONTH_ALT = "|".join(sorted(_MONTHS, key=len, reverse=True))

_ISO_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_DMY_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{2,4})\b")
_DAY_MONTH_RE = re.compile(rf"\b(\d{{1,2}})\s+({_MONTH_ALT})\s+(\d{{4}})\b", re.IGNORECASE)
_MONTH_DAY_RE = re.compile(rf"\b({_MONTH_ALT})\s+(\d{{1,2}}),?\s+(\d{{4}})\b", re.IGNORECASE)


def _norm(year: int, month: int, day: int) -> str | None:
    try:
        return datetime.date(year, month, day).isoformat()
    except ValueError:
        return None


def _year(raw: str) -> int:
    return int("20" + raw) if len(raw) == 2 else int(raw)


def extract_dates(text: str) -> list[dict[str, str]]:
    """Return ``[{"raw", "norm"}]`` for every date in *text*, in text order.

    Each normalised date appears once (first occurrence wins).
    """
    found: list[tuple[int, str, str]] = []
    for m in _ISO_RE.finditer(text):
        norm = _norm(int(m[1]), int(m[2]), int(m[3]))
        if norm:
            found.append((m.start(), m[0], norm))
    for m in _DMY_RE.finditer(text):
        if len(m[3]) == 3:
            continue
        norm = _norm(_year(m[3]), int(m[2]), int(m[1]))
        if norm:
            found.append((m.start(), m[0], norm))
    for m in _DAY_MONTH_RE.finditer(text):
        norm = _norm(int(m[3]), _MONTHS[m[2].lower()], int(m[1]))
        if norm:
            found.append((m.start(), m[0], norm))
    for m in _MONTH_DAY_RE.finditer(text):
        norm = _norm(int(m[3]), _MONTHS[m[1].lower()], int(m[2]))
        if norm:
            found.append((m.start(), m[0], norm))

    found.sort(key=lambda f: f[0])
    seen: set[str] = set()
    out: list[dict[str, str]] = []
    for _, raw, norm in found:
        if norm not in seen:
            seen.add(norm)
            out.append({"raw": raw, "norm": norm})
    return out


def first_date(text: str) -> str | None:
    """Return the first ISO or day-first date in *text*, normalised, or None."""
    iso = _ISO_RE.search(text)
    if iso:
        return _norm(int(iso[1]), int(iso[2]), int(iso[3]))
    dmy = _DMY_RE.search(text)
    if dmy and len(dmy[3]) != 3:
        return _norm(_year(dmy[3]), int(dmy[2]), int(dmy[1]))
    return None


class DatesAnnotator(LocalAnnotator):
    name = "dates"

    def annotate_local(self, chunk: Chunk) -> list[dict[str, str]]:
        return extract_dates(chunk.text)
