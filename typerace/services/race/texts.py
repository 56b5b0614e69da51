"""Reference text provider.

Texts come from an optional remote quote API with the curated pool below as
the fallback. ``choose_text`` never raises: any remote failure falls back.
"""

import random
from typing import Optional

import httpx
from flask import current_app

QUOTES = [
    "The quick brown fox jumps over the lazy dog. Programming is thinking, not typing.",
    "To be, or not to be, that is the question: Whether 'tis nobler in the mind to suffer the slings and arrows of outrageous fortune.",
    "It was the best of times, it was the worst of times, it was the age of wisdom, it was the age of foolishness.",
    "All that we see or seem is but a dream within a dream.",
    "Success is not final, failure is not fatal: it is the courage to continue that counts.",
    "In the middle of difficulty lies opportunity.",
    "Do not go gentle into that good night, Old age should burn and rave at close of day.",
]

_TEXT_KEYS = ('content', 'quote', 'text')


def is_usable_text(text) -> bool:
    return isinstance(text, str) and bool(text.strip()) and text.isprintable()


def random_quote() -> str:
    return random.choice(QUOTES)


def _extract_text(payload) -> Optional[str]:
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    if not isinstance(payload, dict):
        return None
    for key in _TEXT_KEYS:
        value = payload.get(key)
        if isinstance(value, str):
            return value.strip()
    return None


def fetch_quote(url: str, timeout: float = 3.0, transport: Optional[httpx.BaseTransport] = None) -> Optional[str]:
    """Best-effort remote fetch. Returns None on any failure."""
    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            response = client.get(url)
            response.raise_for_status()
            text = _extract_text(response.json())
    except (httpx.HTTPError, ValueError) as exc:
        current_app.logger.warning(f"[quote-fallback] url={url} error={exc.__class__.__name__}: {exc}")
        return None
    if not is_usable_text(text):
        current_app.logger.warning(f"[quote-fallback] url={url} unusable payload")
        return None
    return text


def choose_text(transport: Optional[httpx.BaseTransport] = None) -> str:
    url = current_app.config.get('QUOTE_API_URL')
    if url:
        timeout = float(current_app.config.get('QUOTE_API_TIMEOUT_SEC', 3.0))
        text = fetch_quote(url, timeout=timeout, transport=transport)
        if text:
            return text
    return random_quote()
