"""Dispatch accounting - Pure functions.

Chunking of recipients under the transport's per-call ceiling, per-chunk
accounting of transport results, and topic naming for severity
broadcasts. The actual sending happens in the dispatcher via the shell.
"""

from dataclasses import dataclass, field

from alertflow.core.alert import Alert, SEVERITY_CRITICAL, SEVERITY_HIGH


# Maximum recipients per multicast call accepted by the push transport
DEFAULT_MAX_RECIPIENTS_PER_CALL = 500

DEFAULT_TOPIC_PREFIX = "alerts_"

DEFAULT_BROADCAST_SEVERITIES = (SEVERITY_HIGH, SEVERITY_CRITICAL)


@dataclass(frozen=True)
class SendResult:
    """Outcome of delivering to one recipient (or one topic).

    Attributes:
        success: Whether the transport accepted the message
        message_id: Transport message ID on success
        error: Error description on failure
        unregistered: True if the transport reports the token as gone
    """
    success: bool
    message_id: str | None = None
    error: str | None = None
    unregistered: bool = False


@dataclass(frozen=True)
class ChunkResult:
    """Accounting for one dispatch chunk.

    Invariant: sent + failed == size.

    Attributes:
        index: Position of the chunk in the dispatch
        size: Number of recipients in the chunk
        sent: Recipients the transport accepted
        failed: Recipients that failed
        failed_tokens: Tokens that failed
        unregistered_tokens: Failed tokens the transport reports as gone
        error: Chunk-level error if the whole call failed
    """
    index: int
    size: int
    sent: int
    failed: int
    failed_tokens: tuple[str, ...] = ()
    unregistered_tokens: tuple[str, ...] = ()
    error: str | None = None


@dataclass
class DispatchReport:
    """Result of dispatching one alert.

    Attributes:
        alert_id: The dispatched alert
        targeted: Number of subscribers targeted
        chunks: Per-chunk accounting, in chunk order
        topic: Broadcast topic (None if no broadcast was due)
        topic_message_id: Message ID of the topic send
        topic_error: Error of the topic send, if it failed
    """
    alert_id: str
    targeted: int = 0
    chunks: list[ChunkResult] = field(default_factory=list)
    topic: str | None = None
    topic_message_id: str | None = None
    topic_error: str | None = None

    @property
    def total_sent(self) -> int:
        return sum(c.sent for c in self.chunks)

    @property
    def total_failed(self) -> int:
        return sum(c.failed for c in self.chunks)

    @property
    def failed_tokens(self) -> list[str]:
        return [t for c in self.chunks for t in c.failed_tokens]

    @property
    def unregistered_tokens(self) -> list[str]:
        return [t for c in self.chunks for t in c.unregistered_tokens]

    @property
    def any_sent(self) -> bool:
        return self.total_sent > 0


def chunk_tokens(tokens: list[str], max_per_chunk: int) -> list[list[str]]:
    """Split tokens into chunks no larger than the per-call ceiling.

    Pure function.

    Args:
        tokens: Recipient tokens, in dispatch order
        max_per_chunk: Maximum recipients per transport call

    Returns:
        Consecutive chunks covering all tokens exactly once

    Raises:
        ValueError: If max_per_chunk is not positive
    """
    if max_per_chunk < 1:
        raise ValueError(f"max_per_chunk must be positive, got {max_per_chunk}")

    return [
        tokens[i:i + max_per_chunk]
        for i in range(0, len(tokens), max_per_chunk)
    ]


def account_chunk(
    index: int,
    tokens: list[str],
    results: list[SendResult],
) -> ChunkResult:
    """Build chunk accounting from the transport's per-recipient results.

    Pure function. Results are positional; a token with no corresponding
    result counts as failed.
    """
    failed_tokens = []
    unregistered = []
    sent = 0

    for i, token in enumerate(tokens):
        result = results[i] if i < len(results) else None
        if result is not None and result.success:
            sent += 1
            continue
        failed_tokens.append(token)
        if result is not None and result.unregistered:
            unregistered.append(token)

    return ChunkResult(
        index=index,
        size=len(tokens),
        sent=sent,
        failed=len(tokens) - sent,
        failed_tokens=tuple(failed_tokens),
        unregistered_tokens=tuple(unregistered),
    )


def failed_chunk(index: int, tokens: list[str], error: str) -> ChunkResult:
    """Chunk accounting when the whole transport call failed.

    Pure function. Every recipient in the chunk counts as failed.
    """
    return ChunkResult(
        index=index,
        size=len(tokens),
        sent=0,
        failed=len(tokens),
        failed_tokens=tuple(tokens),
        error=error,
    )


def should_broadcast(
    alert: Alert,
    severities: tuple[str, ...] = DEFAULT_BROADCAST_SEVERITIES,
) -> bool:
    """Whether an alert also goes to its severity topic. Pure function."""
    return alert.severity in severities


def topic_for_severity(severity: str, prefix: str = DEFAULT_TOPIC_PREFIX) -> str:
    """Name of the broadcast topic for a severity, e.g. "alerts_critical"."""
    return f"{prefix}{severity}"
