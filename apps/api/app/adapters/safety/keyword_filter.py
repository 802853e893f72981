"""Keyword-based content filter used by default."""

from __future__ import annotations

import re

from app.adapters.safety.base import ContentFilter, FilterResult

# Terms video providers commonly reject, mapped to neutral visual equivalents.
SUBSTITUTIONS: dict[str, str] = {
    "gun": "geometric metallic shape",
    "guns": "geometric metallic shapes",
    "weapon": "abstract object",
    "weapons": "abstract objects",
    "blood": "crimson flowing light",
    "bloody": "deep red atmospheric",
    "kill": "dramatic transformation",
    "killing": "dramatic transformation",
    "murder": "mysterious shadow",
    "dead": "still silhouette",
    "death": "ethereal transition",
    "fight": "dynamic movement",
    "fighting": "dynamic movements",
    "violence": "intense motion",
    "violent": "intense atmospheric",
    "shoot": "beam of light",
    "shooting": "beams of light",
    "knife": "silver gleaming edge",
    "sword": "luminous blade shape",
    "drug": "abstract particles",
    "drugs": "abstract particles",
    "smoke": "atmospheric mist",
    "smoking": "wisps of vapor",
    "drunk": "dizzying motion blur",
    "alcohol": "amber liquid light",
    "naked": "ethereal silhouette",
    "nude": "artistic silhouette",
    "sexy": "elegant confident",
    "kiss": "intimate connection",
    "kissing": "close tender moment",
    "girlfriend": "companion figure",
    "boyfriend": "companion figure",
    "baby": "gentle presence",
    "hate": "intense emotion",
    "revenge": "determined energy",
    "horror": "mysterious darkness",
    "demon": "abstract dark form",
    "devil": "shadowy figure",
    "hell": "fiery underworld glow",
}

# Always rejected, never rewritten.
BLOCKLIST: frozenset[str] = frozenset(
    {
        "beheading",
        "child abuse",
        "csam",
        "gore",
        "self-harm",
        "suicide",
        "torture",
    }
)


def _word_pattern(term: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE)


class KeywordContentFilter(ContentFilter):
    """Rewrites flagged words and blocks a small set of terms outright."""

    def __init__(
        self,
        substitutions: dict[str, str] | None = None,
        blocklist: frozenset[str] | None = None,
    ) -> None:
        self._substitutions = [
            (term, _word_pattern(term), replacement)
            for term, replacement in (substitutions if substitutions is not None else SUBSTITUTIONS).items()
        ]
        self._blocklist = [(term, _word_pattern(term)) for term in sorted(blocklist if blocklist is not None else BLOCKLIST)]

    def review(self, prompt: str) -> FilterResult:
        blocked_terms = [term for term, pattern in self._blocklist if pattern.search(prompt)]
        if blocked_terms:
            return FilterResult(sanitized=prompt, violations=blocked_terms, blocked=True)

        sanitized = prompt
        violations: list[str] = []
        for term, pattern, replacement in self._substitutions:
            sanitized, count = pattern.subn(replacement, sanitized)
            if count:
                violations.append(term)
        return FilterResult(sanitized=sanitized, violations=violations, blocked=False)


__all__ = ["BLOCKLIST", "KeywordContentFilter", "SUBSTITUTIONS"]
