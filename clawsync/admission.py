"""Pre-flight admission checks run before any model or thread work.

Order: per-session rate limit, then the global rate limit, then message
length.  A message that is too long has therefore already spent one
token from each bucket when it is rejected.
"""

from __future__ import annotations

import logging
from typing import Protocol

from clawsync.config import MAX_MESSAGE_LENGTH
from clawsync.services.rate_limiter import (
    GLOBAL_KEY,
    GLOBAL_MESSAGES_BUCKET,
    PUBLIC_CHAT_BUCKET,
    RateLimitResult,
)

logger = logging.getLogger(__name__)

SESSION_LIMIT_MESSAGE = "Rate limit exceeded. Please wait before sending another message."
GLOBAL_LIMIT_MESSAGE = "The agent is currently busy. Please try again in a moment."


class Limiter(Protocol):
    def limit(self, bucket: str, key: str) -> RateLimitResult: ...


class AdmissionRejected(Exception):
    """The request was refused before generation; ``str(exc)`` is user-facing."""

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message)


def too_long_message(max_length: int = MAX_MESSAGE_LENGTH) -> str:
    return f"Message too long. Maximum {max_length} characters."


class AdmissionGuard:
    """Rate and length checks for one inbound message."""

    def __init__(self, limiter: Limiter, max_length: int = MAX_MESSAGE_LENGTH) -> None:
        self._limiter = limiter
        self._max_length = max_length

    def admit(self, session_id: str, message: str) -> None:
        """Return quietly when the message may proceed, else raise."""
        if not self._limiter.limit(PUBLIC_CHAT_BUCKET, session_id).ok:
            raise AdmissionRejected("session_rate_limit", SESSION_LIMIT_MESSAGE)

        if not self._limiter.limit(GLOBAL_MESSAGES_BUCKET, GLOBAL_KEY).ok:
            raise AdmissionRejected("global_rate_limit", GLOBAL_LIMIT_MESSAGE)

        if len(message) > self._max_length:
            logger.info(
                "Rejected %d-char message from %s (max %d)",
                len(message), session_id, self._max_length,
            )
            raise AdmissionRejected("message_too_long", too_long_message(self._max_length))
