"""
Text hygiene at the edges.

``normalise_user_input`` cleans chat messages before they are formatted into
the model's context turn.  ``sanitize_error_message`` turns an unexpected
exception into a short sentence that is safe to show the user or to put in a
tool-response turn: never a stack, a key, a prompt fragment or an upstream
response body.
"""
from __future__ import annotations

import asyncio
import re
import unicodedata

import httpx

# Zero-width and bidi controls that survive NFC and are invisible in the UI.
_INVISIBLE_CHARS = re.compile("[\u200b-\u200f\u202a-\u202e\u2060-\u2064\u2066-\u2069\ufeff]")
# C0/C1 controls except tab and newline.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_BLANK_RUNS = re.compile(r"\n{3,}")

GENERIC_FAILURE = "The tool failed unexpectedly."


def normalise_user_input(text: str) -> str:
    """Normalise a chat message.

    NFC, invisible and control characters removed, CRLF/CR folded to LF,
    trailing whitespace stripped per line, and runs of blank lines collapsed
    to a single blank line.
    """
    if not text:
        return ""
    text = unicodedata.normalize("NFC", text)
    text = _INVISIBLE_CHARS.sub("", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS.sub("", text)
    text = "\n".join(line.rstrip() for line in text.split("\n"))
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


def sanitize_error_message(exc: BaseException, default: str = GENERIC_FAILURE) -> str:
    """Map an exception to a short, generic sentence."""
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return "The request timed out. Please try again."
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429:
            return "The service is busy. Please try again in a moment."
        if status in (401, 403):
            return "Authentication required"
        if status == 404:
            return "Resource not found"
        return default
    if isinstance(exc, httpx.TransportError):
        return "A network error occurred. Please try again."

    text = str(exc).lower()
    if "api key" in text or "api_key" in text:
        return "AI service not configured"
    if "rate limit" in text or "rate_limit" in text:
        return "The service is busy. Please try again in a moment."
    if "not found" in text:
        return "Resource not found"
    return default
