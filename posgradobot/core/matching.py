# posgradobot/core/matching.py
"""
Brochure matching: free-text program name -> brochure URL.

Tiers, first success wins:
 1. exact      normalized query == normalized program name
 2. tokens     bidirectional substring overlap of keyword tokens,
               score >= max(2, floor(0.5 * len(query_tokens)))
 3. faculty    the faculty brochure of the faculty named by the hint, or
               its first program with a brochure
 4. NotFound   (None)

Substring overlap instead of exact token equality tolerates plural and
"mención" suffix variants of long compound program names without a stemmer.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from posgradobot.core.catalog import CatalogIndex
from posgradobot.core.normalizer import normalize, tokenize

logger = logging.getLogger("posgradobot.core.matching")

MIN_TOKEN_SCORE = 2
TOKEN_RATIO = 0.5


class MatchTier(str, enum.Enum):
    EXACT = "exact"
    TOKENS = "tokens"
    FACULTY = "faculty"

    @property
    def program_level(self) -> bool:
        return self is not MatchTier.FACULTY


@dataclass(frozen=True)
class BrochureResult:
    url: str
    program_name: str
    faculty_name: str
    tier: MatchTier
    score: int = 0


def token_threshold(query_token_count: int) -> int:
    return max(MIN_TOKEN_SCORE, int(query_token_count * TOKEN_RATIO))


class MatchingEngine:
    def __init__(self, catalog: CatalogIndex):
        self.catalog = catalog

    def resolve_brochure(self, query_text: str, faculty_hint: Optional[str] = None) -> Optional[BrochureResult]:
        normalized = normalize(query_text)
        query_tokens = tokenize(query_text)
        logger.info("Resolving brochure for %r (normalized=%r tokens=%s)", query_text, normalized, query_tokens)

        result = self._exact(query_text) or self._by_tokens(query_tokens)
        if result is None and faculty_hint:
            result = self._by_faculty(faculty_hint)

        if result is None:
            logger.info("No brochure found for program %r (faculty hint %r)", query_text, faculty_hint)
        else:
            logger.info(
                "Brochure match tier=%s program=%r faculty=%r url=%s",
                result.tier.value,
                result.program_name,
                result.faculty_name,
                result.url,
            )
        return result

    def _exact(self, query_text: str) -> Optional[BrochureResult]:
        found = self.catalog.find_exact(query_text, require_brochure=True)
        if not found:
            return None
        faculty, program = found
        return BrochureResult(program.brochure, program.name, faculty.name, MatchTier.EXACT, len(program.tokens))

    def _by_tokens(self, query_tokens) -> Optional[BrochureResult]:
        if not query_tokens:
            return None
        threshold = token_threshold(len(query_tokens))
        best = None
        best_score = 0
        examined = 0
        for faculty, program, score in self.catalog.score_candidates(query_tokens):
            examined += 1
            if not program.brochure:
                continue
            # strict ">" keeps the first candidate on ties
            if score >= threshold and score > best_score:
                best, best_score = (faculty, program), score
        logger.debug("Token tier examined %d programs (threshold=%d, best=%d)", examined, threshold, best_score)
        if best is None:
            return None
        faculty, program = best
        return BrochureResult(program.brochure, program.name, faculty.name, MatchTier.TOKENS, best_score)

    def _by_faculty(self, faculty_hint: str) -> Optional[BrochureResult]:
        faculty = self.catalog.find_faculty(faculty_hint)
        if faculty is None:
            return None
        if faculty.brochure:
            return BrochureResult(faculty.brochure, faculty.name, faculty.name, MatchTier.FACULTY)
        program = faculty.first_with_brochure()
        if program is None:
            return None
        return BrochureResult(program.brochure, program.name, faculty.name, MatchTier.FACULTY)
