"""
Reconciles parsed invoice items against a hand-curated expected set.

Matching is one-to-one: every actual item can satisfy at most one expected
item. Expected items are processed in order; items with an item id are
looked up by id (exact), items without one by fuzzy description. Matched
pairs are compared field by field, and whatever is left of the actual pool
at the end is reported as extra.

The comparator reports discrepancies, it never raises for them.
"""

from collections import Counter
from typing import Any, Literal
from loguru import logger
from pydantic import BaseModel, Field
from rapidfuzz import fuzz, process, utils
from ..models.invoice import InvoiceItem


# rapidfuzz scores run 0-100, higher is more similar
ITEM_ID_SCORE_CUTOFF = 100
DESCRIPTION_SCORE_CUTOFF = 70
DESCRIPTION_MIN_LENGTH = 3

COMPARED_FIELDS = ("page_index", "item_id", "item_description", "quantity", "unit_price")
DISAMBIGUATION_FIELDS = ("page_index", "item_description", "quantity", "unit_price")


class FieldDifference(BaseModel):
    field: str
    actual: Any = None
    expected: Any = None


class DiffDetail(BaseModel):
    kind: Literal["missing", "mismatch", "extra"]
    expected: InvoiceItem | None = None
    actual: InvoiceItem | None = None
    differences: list[FieldDifference] = Field(default_factory=list)


class DiffReport(BaseModel):
    """Missing, mismatched and extra items between actual and expected"""
    mismatch_count: int = 0
    missing_count: int = 0
    extra_count: int = 0
    details: list[DiffDetail] = Field(default_factory=list)
    discarded: list[InvoiceItem] = Field(default_factory=list)  # ambiguous duplicates dropped from the pool

    @property
    def total_differences(self) -> int:
        return self.mismatch_count + self.missing_count + self.extra_count

    @property
    def passed(self) -> bool:
        return self.total_differences == 0


def normalize_description(description: str | None) -> str | None:
    """Raw OCR sometimes breaks descriptions over lines; fixtures never do."""
    if description is None:
        return None
    return description.replace("\n", "")


def _normalize_item_id(item_id: str) -> str:
    return item_id.strip().lower()


def _is_blank(value: str | None) -> bool:
    return value is None or value.strip() == ""


def _field_value(item: InvoiceItem, field: str) -> Any:
    value = getattr(item, field)
    if field == "item_description":
        return normalize_description(value)
    return value


def field_differences(actual: InvoiceItem, expected: InvoiceItem, fields=COMPARED_FIELDS) -> list[FieldDifference]:
    return [
        FieldDifference(field=field, actual=getattr(actual, field), expected=getattr(expected, field))
        for field in fields
        if _field_value(actual, field) != _field_value(expected, field)
    ]


class ItemComparator:
    """
    One comparison run.

    The actual items are copied into an immutable tuple and a set of consumed
    indices stands in for removing items from the pool, so the caller's lists
    are never touched.
    """

    def __init__(self, actual: list[InvoiceItem], expected: list[InvoiceItem]):
        self.actual = tuple(actual)
        self.expected = tuple(expected)
        self.consumed: set[int] = set()
        self.discarded: list[int] = []
        self._pending_ids = Counter(
            _normalize_item_id(item.item_id) for item in self.expected if not _is_blank(item.item_id)
        )

    def _available(self) -> list[int]:
        return [i for i in range(len(self.actual)) if i not in self.consumed]

    def _discard(self, indices) -> None:
        for i in indices:
            if i not in self.consumed:
                self.consumed.add(i)
                self.discarded.append(i)

    def find_by_item_id(self, expected: InvoiceItem) -> int | None:
        key = _normalize_item_id(expected.item_id)
        self._pending_ids[key] -= 1

        choices = {i: self.actual[i].item_id for i in self._available() if self.actual[i].item_id is not None}
        if not choices:
            return None

        results = process.extract(
            expected.item_id,
            choices,
            scorer=fuzz.ratio,
            processor=_normalize_item_id,
            score_cutoff=ITEM_ID_SCORE_CUTOFF,
            limit=None,
        )
        candidates = sorted(index for _, _, index in results)

        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        # Duplicate item ids: only an exact field match may resolve them
        for index in candidates:
            actual = self.actual[index]
            if not field_differences(actual, expected, DISAMBIGUATION_FIELDS):
                if self._pending_ids[key] <= 0:
                    self._discard(i for i in candidates if i != index)
                return index

        logger.warning(
            "Multiple items found with itemId {item_id} but no exact match. "
            "Removing {count} items from consideration.",
            item_id=expected.item_id,
            count=len(candidates),
        )
        self._discard(candidates)
        return None

    def find_by_description(self, expected: InvoiceItem) -> int | None:
        logger.debug(
            "No itemId found, using description-based matching",
            description=expected.item_description,
        )
        available = self._available()
        query = normalize_description(expected.item_description) or ""

        if len(query.strip()) >= DESCRIPTION_MIN_LENGTH:
            choices = {
                i: normalize_description(self.actual[i].item_description)
                for i in available
                if self.actual[i].item_description
            }
            best = process.extractOne(
                query,
                choices,
                scorer=fuzz.WRatio,
                processor=utils.default_process,
                score_cutoff=DESCRIPTION_SCORE_CUTOFF,
            )
            if best is not None:
                return best[2]

        # Fuzzy search found nothing good enough, fall back to identical item ids
        for i in available:
            if self.actual[i].item_id == expected.item_id:
                return i
        return None

    def find_best_match(self, expected: InvoiceItem) -> int | None:
        if not _is_blank(expected.item_id):
            return self.find_by_item_id(expected)
        return self.find_by_description(expected)

    def run(self) -> DiffReport:
        report = DiffReport()

        for position, expected in enumerate(self.expected, start=1):
            index = self.find_best_match(expected)

            if index is None:
                report.missing_count += 1
                report.details.append(DiffDetail(kind="missing", expected=expected))
                logger.info(
                    "Missing item {position}: {description}",
                    position=position,
                    description=expected.item_description,
                )
                continue

            self.consumed.add(index)
            actual = self.actual[index]
            differences = field_differences(actual, expected)
            if differences:
                report.mismatch_count += 1
                report.details.append(
                    DiffDetail(kind="mismatch", expected=expected, actual=actual, differences=differences)
                )
                logger.info(
                    "Mismatch {count}: {description}",
                    count=report.mismatch_count,
                    description=expected.item_description,
                    fields=[d.field for d in differences],
                )

        for index in self._available():
            actual = self.actual[index]
            report.extra_count += 1
            report.details.append(DiffDetail(kind="extra", actual=actual))
            logger.info("Extra item: {description}", description=actual.item_description)

        report.discarded = [self.actual[i] for i in self.discarded]

        logger.info(
            "Comparison summary",
            mismatches=report.mismatch_count,
            missing=report.missing_count,
            extra=report.extra_count,
            discarded=len(report.discarded),
            actual_items=len(self.actual),
            expected_items=len(self.expected),
        )
        return report


def compare_items(actual: list[InvoiceItem], expected: list[InvoiceItem]) -> DiffReport:
    """Compares two item collections; neither input is modified."""
    return ItemComparator(actual, expected).run()
