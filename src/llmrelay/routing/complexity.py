# src/llmrelay/routing/complexity.py
"""
Complexity Analyzer for request routing.

Classifies a request into a coarse complexity tier using two signals only:
the word count and the presence of indicator phrases (plus a question
mark). It is a deterministic heuristic, not language understanding; the
router uses the tier to pick a cost/quality trade-off.

Classification:
    - simple:  words <= simple_threshold, no indicator phrase, no "?"
    - medium:  words <= medium_threshold, no indicator phrase
    - complex: everything else

Usage:
    analyzer = ComplexityAnalyzer()
    analyzer.analyze("What is the relationship between pricing and support tiers?")
    # ComplexityTier.COMPLEX
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from ..config.models import DEFAULT_COMPLEX_INDICATORS
from ..models import ComplexityTier

# Letter runs, allowing inner apostrophes and hyphens ("don't", "well-known").
_WORD_PATTERN = re.compile(r"[^\W\d_]+(?:['\-][^\W\d_]+)*")


def count_words(text: str) -> int:
    """Counts alphabetic words in ``text``; digits and punctuation are ignored."""
    return len(_WORD_PATTERN.findall(text))


@dataclass(frozen=True)
class ComplexityReport:
    """Signals behind a classification, for logging and recommendations."""

    tier: ComplexityTier
    word_count: int
    indicators: tuple[str, ...]
    has_question: bool


class ComplexityAnalyzer:
    """Pure, thread-safe complexity classifier."""

    def __init__(
        self,
        simple_threshold: int = 50,
        medium_threshold: int = 200,
        indicators: Iterable[str] = DEFAULT_COMPLEX_INDICATORS,
    ):
        if simple_threshold >= medium_threshold:
            raise ValueError("simple_threshold must be lower than medium_threshold")
        self.simple_threshold = simple_threshold
        self.medium_threshold = medium_threshold
        self.indicators = tuple(phrase.lower() for phrase in indicators)

    def inspect(self, text: str) -> ComplexityReport:
        """Classifies ``text`` and returns the signals that led to the tier."""
        lowered = text.lower()
        word_count = count_words(text)
        found = tuple(phrase for phrase in self.indicators if phrase in lowered)
        has_question = "?" in text

        if word_count <= self.simple_threshold and not found and not has_question:
            tier = ComplexityTier.SIMPLE
        elif word_count <= self.medium_threshold and not found:
            tier = ComplexityTier.MEDIUM
        else:
            tier = ComplexityTier.COMPLEX
        return ComplexityReport(tier=tier, word_count=word_count, indicators=found, has_question=has_question)

    def analyze(self, text: str) -> ComplexityTier:
        """Returns the complexity tier of ``text``."""
        return self.inspect(text).tier


__all__ = ["ComplexityAnalyzer", "ComplexityReport", "count_words"]
