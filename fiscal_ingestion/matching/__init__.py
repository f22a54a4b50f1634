"""Item matching: exact code lookup with a fuzzy text fallback."""

from fiscal_ingestion.matching.engine import ItemMatcher, MatchOutcome
from fiscal_ingestion.matching.similarity import token_set_similarity

__all__ = ["ItemMatcher", "MatchOutcome", "token_set_similarity"]
