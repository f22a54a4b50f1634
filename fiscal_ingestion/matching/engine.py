"""
ItemMatcher -- resolve document line items to catalog products.

Order of attempts:
    1. Exact lookup of the product code against SKU or barcode (confidence 1.0).
    2. Text search on the first words of the description, every candidate
       scored by token-set similarity; the best one is accepted only when its
       score is strictly above the threshold.

A catalog failure is confined to the item being matched: the outcome is an
``error`` status carrying the failure message.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from fiscal_ingestion.collaborators import Catalog, CatalogProduct
from fiscal_ingestion.domain.types import LineItemStatus, MatchSource
from fiscal_ingestion.matching.similarity import search_phrase, token_set_similarity
from fiscal_kernel.logging_config import get_logger

logger = get_logger("ingestion.matching")


class MatchableItem(Protocol):
    product_code: str
    description: str


@dataclass(frozen=True)
class MatchOutcome:
    status: LineItemStatus
    product_id: UUID | None = None
    confidence: float | None = None
    source: MatchSource | None = None
    error_details: str | None = None

    @property
    def is_match(self) -> bool:
        return self.status is LineItemStatus.MATCHED


class ItemMatcher:
    """Matches one item at a time against a Catalog."""

    def __init__(
        self,
        catalog: Catalog,
        threshold: float = 0.7,
        search_words: int = 3,
        candidate_limit: int = 10,
    ):
        self._catalog = catalog
        self._threshold = threshold
        self._search_words = search_words
        self._candidate_limit = candidate_limit

    def match(self, item: MatchableItem) -> MatchOutcome:
        try:
            return self._match(item)
        except Exception as exc:
            logger.warning(
                "item_match_failed",
                extra={"product_code": item.product_code, "error": str(exc)},
                exc_info=True,
            )
            return MatchOutcome(
                status=LineItemStatus.ERROR,
                error_details=f"Catalog lookup failed: {exc}",
            )

    def _match(self, item: MatchableItem) -> MatchOutcome:
        if item.product_code:
            product = self._catalog.find_by_sku_or_barcode(item.product_code)
            if product is not None:
                return MatchOutcome(
                    status=LineItemStatus.MATCHED,
                    product_id=product.id,
                    confidence=1.0,
                    source=MatchSource.EXACT,
                )

        phrase = search_phrase(item.description, self._search_words)
        if not phrase:
            return MatchOutcome(status=LineItemStatus.PENDING)

        candidates = self._catalog.search_by_text(phrase, self._candidate_limit)
        best = self._best_candidate(candidates, item.description)
        if best is None:
            return MatchOutcome(status=LineItemStatus.PENDING)

        product, confidence = best
        if confidence > self._threshold:
            return MatchOutcome(
                status=LineItemStatus.MATCHED,
                product_id=product.id,
                confidence=confidence,
                source=MatchSource.FUZZY,
            )
        return MatchOutcome(status=LineItemStatus.PENDING, confidence=confidence)

    @staticmethod
    def _best_candidate(
        candidates: list[CatalogProduct],
        description: str,
    ) -> tuple[CatalogProduct, float] | None:
        best: tuple[CatalogProduct, float] | None = None
        for candidate in candidates:
            score = token_set_similarity(candidate.name, description)
            # Strict comparison keeps the earliest candidate on ties.
            if best is None or score > best[1]:
                best = (candidate, score)
        return best
