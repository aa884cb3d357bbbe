from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass

IDENTIFIER_RE = re.compile(r"^B[A-Z0-9]{9}$")

# Order matters: explicit URL shapes win over a bare token found anywhere in the text.
URL_PATTERNS = (
    re.compile(r"/dp/([A-Z0-9]{10})", re.I),
    re.compile(r"/gp/product/([A-Z0-9]{10})", re.I),
    re.compile(r"/product/([A-Z0-9]{10})", re.I),
    re.compile(r"[?&]asin=([A-Z0-9]{10})", re.I),
    re.compile(r"\b(B[A-Z0-9]{9})\b", re.I),
)

ROW_IDENTIFIER_KEYS = ("asin", "identifier", "url", "source_url", "link")


@dataclass
class RawInputRecord:
    raw: str
    title: str | None = None
    cost: float | None = None
    category: str | None = None


def is_valid_identifier(value: str | None) -> bool:
    if not value:
        return False
    return bool(IDENTIFIER_RE.match(value.strip().upper()))


def normalize_identifier(value: str | None) -> str | None:
    if not value:
        return None
    clean = str(value).strip().upper()
    if IDENTIFIER_RE.match(clean):
        return clean

    for pattern in URL_PATTERNS:
        match = pattern.search(clean)
        if match:
            candidate = match.group(1).upper()
            if IDENTIFIER_RE.match(candidate):
                return candidate
    return None


def normalize_title(value: str | None) -> str:
    if not value:
        return ""
    clean = value.lower()
    clean = re.sub(r"[^\w\s]", "", clean)
    clean = re.sub(r"\s+", " ", clean)
    return clean.strip()


def parse_raw_input(value: str | Mapping[str, object]) -> RawInputRecord:
    """Accept a pasted string or a spreadsheet row and return a RawInputRecord.

    Rows are looked up by the first non-empty identifier-ish column; cost and
    title columns are optional and carried through untouched.
    """
    if not isinstance(value, Mapping):
        return RawInputRecord(raw=str(value).strip())

    lowered = {str(key).strip().lower(): item for key, item in value.items()}
    raw = ""
    for key in ROW_IDENTIFIER_KEYS:
        item = lowered.get(key)
        if item is not None and str(item).strip():
            raw = str(item).strip()
            break

    title = lowered.get("title")
    category = lowered.get("category")
    return RawInputRecord(
        raw=raw,
        title=str(title).strip() if title else None,
        cost=_to_cost(lowered.get("cost") if lowered.get("cost") is not None else lowered.get("amazon_price")),
        category=str(category).strip() if category else None,
    )


def _to_cost(value: object) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace("$", "").replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None
