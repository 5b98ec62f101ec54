"""Error taxonomy shared by the scrape, ingest and notify stages."""

from __future__ import annotations


class PipelineError(Exception):
    """Base error for the rate pipeline."""


class FetchError(PipelineError):
    """Raw markup could not be retrieved for a source."""

    def __init__(self, source_name: str, message: str) -> None:
        super().__init__(f"{source_name}: {message}")
        self.source_name = source_name


class FetchTimeoutError(FetchError):
    """The remote page did not answer within the fetch timeout."""


class FetchConnectionError(FetchError):
    """No response at all (refused, reset, DNS, or blocked by the remote)."""


class FetchHTTPStatusError(FetchError):
    """The remote answered with a non-2xx status."""

    def __init__(self, source_name: str, status_code: int, reason: str = "") -> None:
        super().__init__(source_name, f"HTTP {status_code} {reason}".rstrip())
        self.status_code = status_code


class ExtractionError(PipelineError):
    """The source locator matched no text in the fetched markup."""


class PersistenceError(PipelineError):
    """A repository read or write failed."""


class DeliveryError(PipelineError):
    """A channel adapter failed to deliver a message."""
