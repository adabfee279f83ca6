"""Extraction output parsing and alert normalization - Pure functions.

The extraction service is asked for JSON but answers like a language
model: the payload may be wrapped in code fences, may be a single object
instead of an array, or may be several objects pasted back to back. This
module turns whatever came back into typed Alert objects.

Parsing happens in two stages:
1. Parse the whole payload as JSON (array or single object).
2. If that fails, scan for balanced top-level {...} fragments and parse
   each one on its own. Fragments that still fail are recorded as
   ParseError and skipped.

Apart from the injectable clock and ID factory, all functions here are
pure with no side effects.
"""

import json
import math
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from alertflow.core.alert import (
    Alert,
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
)
from alertflow.core.errors import ParseError


DEFAULT_VALIDITY_HOURS = 24
DEFAULT_SOURCE = "USGS"
UNKNOWN = "Unknown"
UNKNOWN_LOCATION = "Unknown Location"

# ```json ... ``` wrappers, anywhere in the payload
_CODE_FENCE = re.compile(r"```(?:json)?[ \t]*\r?\n?", re.IGNORECASE)

# Leading numeric prefix, e.g. "7.2" in "7.2 Mw"
_NUMBER_PREFIX = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")


@dataclass(frozen=True)
class RawCandidate:
    """One untrusted record from the extraction service.

    Every field holds whatever the service sent (or None when absent);
    nothing here has been type-checked yet.
    """
    disaster_type: Any = None
    latitude: Any = None
    longitude: Any = None
    location: Any = None
    date: Any = None
    time: Any = None
    magnitude: Any = None


@dataclass
class NormalizationResult:
    """Output of normalizing one extraction payload.

    Attributes:
        alerts: Normalized alerts, in extraction order
        errors: Fragments that could not be parsed
    """
    alerts: list[Alert] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)

    @property
    def parse_error_count(self) -> int:
        return len(self.errors)


def candidate_from_mapping(data: dict[str, Any]) -> RawCandidate:
    """Wrap a decoded JSON object as a RawCandidate.

    Pure function. Unknown keys are ignored.
    """
    return RawCandidate(
        disaster_type=data.get("disasterType"),
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
        location=data.get("location"),
        date=data.get("date"),
        time=data.get("time"),
        magnitude=data.get("magnitude"),
    )


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers from a payload.

    Pure function.
    """
    return _CODE_FENCE.sub("", text).strip()


def scan_brace_fragments(text: str) -> list[str]:
    """Split text into balanced top-level {...} fragments.

    Pure function. Braces inside JSON string literals are ignored, so
    a location like "Sector {7}" does not break the scan. Text between
    fragments is discarded. An opening brace that is never closed yields
    the remainder of the text as an (unparseable) fragment, and scanning
    resumes just after that brace so complete objects following a
    truncated one are still found.

    Args:
        text: Payload text

    Returns:
        Fragments in the order they appear
    """
    fragments = []
    offset = 0

    while offset < len(text):
        depth = 0
        start = -1
        in_string = False
        escaped = False

        for i in range(offset, len(text)):
            char = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue

            if char == '"':
                # Quotes only matter inside a fragment
                if depth > 0:
                    in_string = True
            elif char == "{":
                if depth == 0:
                    start = i
                depth += 1
            elif char == "}" and depth > 0:
                depth -= 1
                if depth == 0:
                    fragments.append(text[start:i + 1])
                    start = -1

        if depth == 0 or start < 0:
            break
        fragments.append(text[start:])
        offset = start + 1

    return fragments


def _collect_candidates(
    parsed: Any,
    candidates: list[dict[str, Any]],
    errors: list[ParseError],
) -> None:
    items = parsed if isinstance(parsed, list) else [parsed]
    for item in items:
        if isinstance(item, dict):
            candidates.append(item)
        else:
            errors.append(ParseError(json.dumps(item), "candidate is not a JSON object"))


def parse_extraction_output(text: str) -> tuple[list[dict[str, Any]], list[ParseError]]:
    """Decode raw extraction output into candidate objects.

    Pure function. Never raises on malformed input.

    Args:
        text: Raw text returned by the extraction service

    Returns:
        Tuple of (decoded candidate dicts, parse errors)
    """
    candidates: list[dict[str, Any]] = []
    errors: list[ParseError] = []

    cleaned = strip_code_fences(text or "")
    if not cleaned:
        return candidates, errors

    try:
        parsed = json.loads(cleaned)
    except ValueError:
        pass
    else:
        _collect_candidates(parsed, candidates, errors)
        return candidates, errors

    # Whole-payload parse failed: fall back to fragment scanning
    for fragment in scan_brace_fragments(cleaned):
        try:
            parsed = json.loads(fragment)
        except ValueError as e:
            errors.append(ParseError(fragment, f"invalid JSON fragment ({e.__class__.__name__})"))
            continue
        _collect_candidates(parsed, candidates, errors)

    return candidates, errors


def parse_number(value: Any) -> float | None:
    """Parse a loosely formatted number.

    Pure function. Accepts numbers and strings with a leading numeric
    prefix ("6.1", " 7.2 Mw"). Returns None for anything else, including
    booleans, NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_PREFIX.match(value)
        if match is None:
            return None
        number = float(match.group(1))
    else:
        return None

    if math.isnan(number) or math.isinf(number):
        return None
    return number


def determine_severity(magnitude: Any, disaster_type: Any) -> str:
    """Derive severity from magnitude and disaster type.

    Pure function. Type matching is case-insensitive. A magnitude that
    cannot be read as a number yields medium.

    Args:
        magnitude: Raw magnitude value
        disaster_type: Raw disaster type value

    Returns:
        One of the SEVERITY_* constants
    """
    mag = parse_number(magnitude)
    if mag is None:
        return SEVERITY_MEDIUM

    kind = str(disaster_type or "").strip().lower()

    if kind == "earthquake":
        thresholds = (7.0, 6.0, 4.0)
    elif kind in ("cyclone", "hurricane"):
        thresholds = (4.0, 3.0, 2.0)
    else:
        thresholds = (7.0, 5.0, 3.0)

    critical, high, medium = thresholds
    if mag >= critical:
        return SEVERITY_CRITICAL
    elif mag >= high:
        return SEVERITY_HIGH
    elif mag >= medium:
        return SEVERITY_MEDIUM
    else:
        return SEVERITY_LOW


def _text(value: Any, default: str) -> str:
    if value is None:
        return default
    text = value.strip() if isinstance(value, str) else str(value)
    return text or default


def normalize_candidate(
    candidate: RawCandidate,
    now: datetime,
    alert_id: str,
    validity_hours: float = DEFAULT_VALIDITY_HOURS,
    source: str = DEFAULT_SOURCE,
) -> Alert:
    """Build a typed Alert from a raw candidate.

    Pure function.

    Args:
        candidate: Untrusted candidate record
        now: Normalization instant (becomes created_at)
        alert_id: Fresh unique ID for the alert
        validity_hours: Length of the validity window
        source: Provenance tag

    Returns:
        Normalized Alert
    """
    return Alert(
        id=alert_id,
        disaster_type=_text(candidate.disaster_type, UNKNOWN),
        location=_text(candidate.location, UNKNOWN_LOCATION),
        date=_text(candidate.date, now.date().isoformat()),
        time=_text(candidate.time, now.strftime("%H:%M:%S")),
        magnitude=_text(candidate.magnitude, UNKNOWN),
        severity=determine_severity(candidate.magnitude, candidate.disaster_type),
        created_at=now,
        expires_at=now + timedelta(hours=validity_hours),
        latitude=parse_number(candidate.latitude),
        longitude=parse_number(candidate.longitude),
        is_active=True,
        source=source,
        notification_sent=False,
    )


def _new_alert_id() -> str:
    return str(uuid.uuid4())


def normalize_extraction(
    text: str,
    now: datetime | None = None,
    validity_hours: float = DEFAULT_VALIDITY_HOURS,
    source: str = DEFAULT_SOURCE,
    id_factory: Callable[[], str] = _new_alert_id,
) -> NormalizationResult:
    """Turn raw extraction output into normalized alerts.

    Args:
        text: Raw text returned by the extraction service
        now: Normalization instant (defaults to the current UTC time)
        validity_hours: Length of each alert's validity window
        source: Provenance tag stamped on every alert
        id_factory: Generates a fresh alert ID per call

    Returns:
        NormalizationResult with alerts in extraction order
    """
    if now is None:
        now = datetime.now(timezone.utc)

    raw_candidates, errors = parse_extraction_output(text)

    alerts = [
        normalize_candidate(
            candidate_from_mapping(raw),
            now=now,
            alert_id=id_factory(),
            validity_hours=validity_hours,
            source=source,
        )
        for raw in raw_candidates
    ]

    return NormalizationResult(alerts=alerts, errors=errors)
