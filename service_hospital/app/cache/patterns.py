"""
Wildcard key patterns for bulk invalidation.

Patterns use ``*`` as the only wildcard (any run of characters, including
none). Everything else is literal and the match covers the whole key, so
``hospitals:list:*`` matches ``hospitals:list:`` and ``hospitals:list:a`` but
not ``hospital:a``.
"""

import functools
import re
from typing import Pattern

# Characters with special meaning in a Redis glob besides "*".
_REDIS_GLOB_SPECIALS = "\\?[]^"


def _validate(pattern: str) -> None:
    if not isinstance(pattern, str):
        raise TypeError(f"cache key pattern must be a string, got {type(pattern).__name__}")
    if not pattern:
        raise ValueError("cache key pattern must not be empty")


@functools.lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> Pattern[str]:
    """Compile a wildcard pattern into an anchored regular expression."""
    _validate(pattern)
    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(regex, re.DOTALL)


def matches(pattern: str, key: str) -> bool:
    """Return True if ``key`` matches ``pattern`` in full."""
    return compile_pattern(pattern).fullmatch(key) is not None


def to_redis_glob(pattern: str) -> str:
    """Translate a wildcard pattern into a Redis ``SCAN MATCH`` glob.

    Redis treats ``?`` and ``[...]`` as wildcards too; they are escaped so the
    primary backend and the fallback map select the same keys.
    """
    _validate(pattern)
    escaped = []
    for char in pattern:
        if char in _REDIS_GLOB_SPECIALS:
            escaped.append("\\" + char)
        else:
            escaped.append(char)
    return "".join(escaped)
