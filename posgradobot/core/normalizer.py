# posgradobot/core/normalizer.py
"""
Text normalization helpers shared by the validators and the matching engine.

 - strip_accents(text): NFD decomposition without combining marks
 - normalize(text): accents, U+FFFD, case, whitespace
 - tokenize(text): normalized words minus stop-words and short tokens
"""
import re
import unicodedata
from typing import List

REPLACEMENT_CHAR = "�"

STOP_WORDS = frozenset(
    ["en", "de", "del", "la", "el", "con", "y", "para", "los", "las", "por", "mencion"]
)

MIN_TOKEN_LENGTH = 3

_WHITESPACE = re.compile(r"\s+")


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(text: str) -> str:
    """
    Canonical form used for comparisons. normalize(normalize(x)) == normalize(x).
    """
    if not text:
        return ""
    normalized = strip_accents(text).replace(REPLACEMENT_CHAR, "")
    # lower() can reintroduce combining marks (e.g. "İ" -> "i̇")
    normalized = strip_accents(normalized.lower())
    return _WHITESPACE.sub(" ", normalized).strip()


def tokenize(text: str) -> List[str]:
    return [
        word
        for word in normalize(text).split(" ")
        if len(word) >= MIN_TOKEN_LENGTH and word not in STOP_WORDS
    ]
