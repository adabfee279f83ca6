"""Error taxonomy - Pure data structures.

Every failure the pipeline distinguishes is one of these types. Shell
clients convert library exceptions into them at their boundary so the
orchestrator only ever reasons about this hierarchy.
"""


class AlertFlowError(Exception):
    """Base class for all pipeline errors."""


class ParseError(AlertFlowError):
    """A fragment of extraction output could not be parsed.

    Never fatal to a batch: the normalizer records and skips it.

    Attributes:
        fragment: The offending text (truncated for logging)
        reason: Why parsing failed
    """

    def __init__(self, fragment: str, reason: str) -> None:
        self.fragment = fragment[:200]
        self.reason = reason
        super().__init__(f"{reason}: {self.fragment!r}")


class ValidationError(AlertFlowError):
    """Input failed a structural or range check.

    Attributes:
        field: Name of the offending field
        reason: Human-readable description
    """

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class StorageError(AlertFlowError):
    """A persistence call failed. Fatal to the current pipeline stage."""


class DocumentNotFoundError(StorageError):
    """An update addressed a document that does not exist."""


class BatchTooLargeError(StorageError):
    """An atomic batch would exceed the store's per-commit write ceiling."""


class DispatchError(AlertFlowError):
    """A push transport call failed for a chunk or a topic send."""


class TransportUnavailableError(DispatchError):
    """The push transport could not be set up at all."""


class ExtractionError(AlertFlowError):
    """The external text-extraction service failed or was not configured."""
