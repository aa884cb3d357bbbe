from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from rapidfuzz.distance import Levenshtein

from ingest.matching.normalization import normalize_title

DEFAULT_TITLE_THRESHOLD = 0.85


@dataclass(frozen=True)
class BatchItem:
    identifier: str
    title: str | None = None


@dataclass(frozen=True)
class CatalogItem:
    identifier: str
    title: str | None = None


@dataclass(frozen=True)
class DuplicateOrigin:
    """Where the first occurrence lives: an earlier batch index or a catalog row."""

    batch_index: int | None = None
    catalog_identifier: str | None = None

    @property
    def in_catalog(self) -> bool:
        return self.catalog_identifier is not None


@dataclass
class UniqueItem:
    index: int
    identifier: str
    title: str | None = None


@dataclass
class Duplicate:
    index: int
    identifier: str
    match_type: str
    original: DuplicateOrigin
    similarity: float = 1.0

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "index": self.index,
            "identifier": self.identifier,
            "match_type": self.match_type,
            "similarity": round(self.similarity, 4),
        }
        if self.original.in_catalog:
            payload["original_identifier"] = self.original.catalog_identifier
        else:
            payload["original_index"] = self.original.batch_index
        return payload


@dataclass
class DuplicateReport:
    unique: list[UniqueItem] = field(default_factory=list)
    duplicates: list[Duplicate] = field(default_factory=list)

    @property
    def unique_identifiers(self) -> list[str]:
        return [item.identifier for item in self.unique]


def title_similarity(left: str | None, right: str | None) -> float:
    a = normalize_title(left)
    b = normalize_title(right)
    if a == b:
        return 1.0 if a else 0.0
    if not a or not b:
        return 0.0
    return 1.0 - Levenshtein.distance(a, b) / max(len(a), len(b))


def titles_similar(left: str | None, right: str | None, threshold: float = DEFAULT_TITLE_THRESHOLD) -> bool:
    return title_similarity(left, right) >= threshold


class DuplicateDetector:
    def __init__(self, title_threshold: float = DEFAULT_TITLE_THRESHOLD, check_titles: bool = False) -> None:
        self.title_threshold = title_threshold
        self.check_titles = check_titles

    def partition(
        self,
        batch: Sequence[BatchItem],
        catalog: Iterable[CatalogItem] = (),
        match_catalog_keys: bool = True,
    ) -> DuplicateReport:
        """Split a batch into unique items and duplicates of an earlier item or catalog row.

        With ``match_catalog_keys=False`` the catalog is only consulted for fuzzy
        title matches, so existing identifiers stay in ``unique`` and can be updated.
        """
        catalog_items = list(catalog)
        catalog_keys = {item.identifier.upper() for item in catalog_items} if match_catalog_keys else set()
        seen: dict[str, int] = {}
        report = DuplicateReport()

        for index, item in enumerate(batch):
            key = item.identifier.upper()

            if key in catalog_keys:
                report.duplicates.append(
                    Duplicate(index=index, identifier=key, match_type="exact", original=DuplicateOrigin(catalog_identifier=key))
                )
                continue
            if key in seen:
                report.duplicates.append(
                    Duplicate(index=index, identifier=key, match_type="exact", original=DuplicateOrigin(batch_index=seen[key]))
                )
                continue

            if self.check_titles and item.title:
                fuzzy = self._fuzzy_match(index, key, item.title, catalog_items, report.unique)
                if fuzzy is not None:
                    report.duplicates.append(fuzzy)
                    continue

            seen[key] = index
            report.unique.append(UniqueItem(index=index, identifier=key, title=item.title))

        return report

    def _fuzzy_match(
        self,
        index: int,
        identifier: str,
        title: str,
        catalog_items: list[CatalogItem],
        earlier: list[UniqueItem],
    ) -> Duplicate | None:
        # Catalog rows win ties over earlier batch items.
        for candidate in catalog_items:
            if not candidate.title or candidate.identifier.upper() == identifier:
                continue
            score = title_similarity(title, candidate.title)
            if score >= self.title_threshold:
                return Duplicate(
                    index=index,
                    identifier=identifier,
                    match_type="fuzzy",
                    original=DuplicateOrigin(catalog_identifier=candidate.identifier.upper()),
                    similarity=score,
                )
        for candidate in earlier:
            if not candidate.title:
                continue
            score = title_similarity(title, candidate.title)
            if score >= self.title_threshold:
                return Duplicate(
                    index=index,
                    identifier=identifier,
                    match_type="fuzzy",
                    original=DuplicateOrigin(batch_index=candidate.index),
                    similarity=score,
                )
        return None
