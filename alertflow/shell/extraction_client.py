"""Extraction Client - Imperative Shell.

This module sends scraped disaster text to the Gemini generateContent API
and returns the model's raw answer. The answer is opaque here: parsing
and normalization happen in core.normalizer.
"""

import logging
from dataclasses import dataclass

import requests

from alertflow.core.errors import ExtractionError


logger = logging.getLogger(__name__)


GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

# Default timeout for extraction requests (seconds)
DEFAULT_TIMEOUT = 60

DEFAULT_MODEL = "gemini-2.0-flash"

EXTRACTION_PROMPT = '''You are given weather/disaster information from an official monitoring website.

Please extract and return, for every event in the data:
- Disaster Type (e.g., earthquake, cyclone, flood)
- Latitude and Longitude
- Location or state affected
- date and time of occurrence
- Magnitude of the disaster

Respond ONLY with a JSON array of objects in this format:
[
  {{
    "disasterType": "...",
    "latitude": "...",
    "longitude": "...",
    "location": "...",
    "date": "...",
    "time": "...",
    "magnitude": "..."
  }}
]

Here is the data:
"""
{source_text}
"""'''


@dataclass
class ExtractionConfig:
    """Configuration for the extraction client.

    Attributes:
        api_key: Gemini API key
        model: Model name
        timeout: Request timeout in seconds
    """
    api_key: str | None = None
    model: str = DEFAULT_MODEL
    timeout: int = DEFAULT_TIMEOUT


def build_prompt(source_text: str) -> str:
    """Wrap source text in the extraction instructions."""
    return EXTRACTION_PROMPT.format(source_text=source_text)


def first_candidate_text(body: dict) -> str:
    """Text of the first candidate in a generateContent response, or ""."""
    try:
        return body["candidates"][0]["content"]["parts"][0]["text"] or ""
    except (KeyError, IndexError, TypeError):
        return ""


class ExtractionClient:
    """Client for the external text-extraction service.

    This is part of the imperative shell - it handles HTTP I/O.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        """Initialize extraction client.

        Args:
            config: Extraction configuration
        """
        self.config = config or ExtractionConfig()

    def extract(self, source_text: str) -> str:
        """Ask the model to extract disaster events from source text.

        This method performs HTTP I/O.

        Args:
            source_text: Raw scraped text

        Returns:
            The model's answer (may be malformed JSON), or "" if it gave none

        Raises:
            ExtractionError: If no API key is configured or the request fails
        """
        if not self.config.api_key:
            raise ExtractionError("No extraction API key configured")

        url = GEMINI_API_URL.format(model=self.config.model)
        payload = {"contents": [{"parts": [{"text": build_prompt(source_text)}]}]}

        logger.info("Sending %d characters to %s", len(source_text), self.config.model)

        # API key goes in a header, never in the query string
        try:
            response = requests.post(
                url,
                json=payload,
                timeout=self.config.timeout,
                headers={
                    "Content-Type": "application/json",
                    "x-goog-api-key": self.config.api_key,
                },
            )
            response.raise_for_status()
        except requests.Timeout as e:
            logger.error("Extraction request timed out")
            raise ExtractionError("Extraction request timed out") from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "unknown"
            logger.error("Extraction request failed with HTTP %s", status)
            raise ExtractionError(f"Extraction request failed with HTTP {status}") from e
        except requests.RequestException as e:
            logger.error("Extraction request failed: %s", e.__class__.__name__)
            raise ExtractionError(
                f"Extraction request failed: {e.__class__.__name__}"
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            logger.error("Extraction response was not JSON")
            raise ExtractionError("Extraction response was not JSON") from e

        text = first_candidate_text(body)
        if not text:
            logger.warning("Extraction response contained no candidate text")
        else:
            logger.info("Received %d characters of extraction output", len(text))

        return text
