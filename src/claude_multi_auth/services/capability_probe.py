"""Optional long-context capability probing.

The long-context beta flag is sent optimistically. When upstream rejects it
the flag is dropped for the rest of the session and the request is resent
once without it:

    unknown --accepted--> granted
    unknown --rejected--> denied
    granted --rejected--> denied

``denied`` is terminal for the session. The state lives in memory only and
starts at ``unknown`` in every process.
"""

import re
from enum import StrEnum

from structlog import get_logger


logger = get_logger(__name__)

REJECTION_STATUS_CODES = frozenset({400, 403})

REJECTION_PATTERNS = (
    re.compile(
        r"long context beta.*(not yet available|incompatible|not supported)",
        re.IGNORECASE | re.DOTALL,
    ),
    re.compile(
        r"context-1m.*(not available|incompatible|not supported)",
        re.IGNORECASE | re.DOTALL,
    ),
)


class CapabilityStatus(StrEnum):
    """Session status of the optional capability flag."""

    UNKNOWN = "unknown"
    GRANTED = "granted"
    DENIED = "denied"


class CapabilityProbe:
    """Tracks whether the long-context flag may be attached."""

    def __init__(self, flag: str) -> None:
        self.flag = flag
        self.status = CapabilityStatus.UNKNOWN

    def should_attach(self, eligible: bool) -> bool:
        """Attach the flag for eligible requests unless it was denied."""
        return eligible and self.status != CapabilityStatus.DENIED

    def record_success(self) -> None:
        if self.status == CapabilityStatus.UNKNOWN:
            self.status = CapabilityStatus.GRANTED
            logger.info("capability_granted", flag=self.flag)

    def record_rejection(self) -> None:
        if self.status != CapabilityStatus.DENIED:
            previous = self.status
            self.status = CapabilityStatus.DENIED
            logger.warning("capability_denied", flag=self.flag, previous=previous)

    @staticmethod
    def is_rejection(status_code: int, body_text: str) -> bool:
        """Check whether an error response rejects the long-context flag."""
        if status_code not in REJECTION_STATUS_CODES:
            return False
        return any(pattern.search(body_text) for pattern in REJECTION_PATTERNS)
