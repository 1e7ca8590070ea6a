"""LLM-backed match providers and the catalog tools they use."""

from src.core.providers.base import MatchCandidate, MatchProvider, MatchQuery
from src.core.providers.factory import create_match_provider

__all__ = ["MatchCandidate", "MatchProvider", "MatchQuery", "create_match_provider"]
