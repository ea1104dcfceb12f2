from __future__ import annotations

import re
from enum import Enum

"""Directory failure classification.

Maps a raw failure message onto a closed set of categories. Patterns are
checked in order and the first match wins, so e.g. an "access denied" message
that also mentions "not found" is an authentication failure.
"""

__all__ = [
    "ErrorCategory",
    "classify_error",
]


class ErrorCategory(Enum):
    CONNECTIVITY = "Connectivity"
    AUTHENTICATION = "Authentication"
    TIMEOUT = "Timeout"
    NOT_FOUND = "NotFound"
    ALREADY_EXISTS = "AlreadyExists"
    OTHER = "Other"


_PATTERNS: tuple[tuple[ErrorCategory, re.Pattern[str]], ...] = (
    (
        ErrorCategory.CONNECTIVITY,
        re.compile(r"server is not operational|RPC server|serverDown", re.IGNORECASE),
    ),
    (
        ErrorCategory.AUTHENTICATION,
        re.compile(
            r"access denied|unauthorized|invalidCredentials|insufficientAccessRights",
            re.IGNORECASE,
        ),
    ),
    (ErrorCategory.TIMEOUT, re.compile(r"timeout|timed out", re.IGNORECASE)),
    (
        ErrorCategory.NOT_FOUND,
        re.compile(r"not found|does not exist|noSuchObject", re.IGNORECASE),
    ),
    (
        ErrorCategory.ALREADY_EXISTS,
        re.compile(r"already a member|already exists|entryAlreadyExists", re.IGNORECASE),
    ),
)


def classify_error(message: str) -> ErrorCategory:
    """Return the category of a failure message (pure, no I/O)."""
    for category, pattern in _PATTERNS:
        if pattern.search(message or ""):
            return category
    return ErrorCategory.OTHER
