"""Error types shared by the feed unification core."""

from typing import Optional


class CrossfeedError(Exception):
    """Base class for crossfeed errors."""


class ConfigurationError(CrossfeedError):
    """Malformed user input, rejected before any network call."""


class PlatformError(CrossfeedError):
    """An error scoped to a single platform."""

    def __init__(self, platform: str, message: str):
        self.platform = platform
        self.message = message
        super().__init__(message)


class TransportError(PlatformError):
    """Upstream HTTP or network failure during a page fetch."""

    def __init__(self, platform: str, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(platform, message)


class NotFoundError(PlatformError):
    """The requested account does not exist on the platform."""

    def __init__(self, platform: str, identifier: str):
        self.identifier = identifier
        super().__init__(platform, f"{platform} account not found: {identifier}")


class PartialDataWarning(UserWarning):
    """An affinity index build stopped early.

    Recorded on the index and shown as an informational state; never raised.
    """

    def __init__(self, platform: str, reason: str, pages_fetched: int = 0):
        self.platform = platform
        self.reason = reason
        self.pages_fetched = pages_fetched
        super().__init__(f"{platform}: {reason} after {pages_fetched} page(s)")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PartialDataWarning):
            return NotImplemented
        return (self.platform, self.reason, self.pages_fetched) == (
            other.platform,
            other.reason,
            other.pages_fetched,
        )

    def __hash__(self) -> int:
        return hash((self.platform, self.reason, self.pages_fetched))
