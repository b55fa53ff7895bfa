"""Admission outcomes."""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class RejectionReason(str, Enum):
    RATE_LIMITED = "rate_limited"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Rejection:
    """A request refused before any stream was opened."""

    reason: RejectionReason
    message: str
    status_code: int
    reset_at: datetime | None = None

    def retry_after(self, now: datetime | None = None) -> int | None:
        """Whole seconds until ``reset_at``, at least 1."""
        if self.reset_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return max(math.ceil((self.reset_at - now).total_seconds()), 1)
