"""
Code pattern matching for ATC and ICD-10 leaves.

A pattern is a literal code in which ``*`` stands for any run of characters,
so ``G35`` matches only ``G35`` while ``G35*`` matches every code starting
with ``G35``. Matching is case-sensitive with no locale handling.

Prefix monotonicity holds for ``*``-terminated patterns: when ``C08*`` and
``C08CA*`` are both patterns, every code matched by the longer one is matched
by the shorter. A pattern without ``*`` is exact, so ``G35`` matches neither
``G35.1`` nor anything else that merely starts with it.
"""

import re
from functools import lru_cache
from typing import Iterable, Pattern

WILDCARD = "*"


@lru_cache(maxsize=2048)
def compile_pattern(pattern: str) -> Pattern[str]:
    """Compile a wildcard pattern into an anchored regular expression."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split(WILDCARD)), re.DOTALL)


def to_regex(pattern: str) -> str:
    """Regular expression source equivalent to a wildcard pattern."""
    return compile_pattern(pattern).pattern


def matches(pattern: str, code: str) -> bool:
    if code is None:
        return False
    if WILDCARD not in pattern:
        return pattern == code
    return compile_pattern(pattern).fullmatch(code) is not None


def match_any(patterns: Iterable[str], codes: Iterable[str]) -> bool:
    """True when any code matches any pattern."""
    codes = [c for c in codes if c]
    return any(matches(p, c) for p in patterns for c in codes)
