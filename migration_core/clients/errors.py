"""
Error normalization for both APIs
Turns any failure shape (response, exception, plain text) into NormalizedError
"""
import json
import re

from migration_core.utils.redaction import redact

KIND_CONNECTION = "connection"
KIND_RETRYABLE = "retryable"
KIND_DENIED = "denied"
KIND_CLIENT = "client"
KIND_SERVER = "server"
KIND_REDIRECT = "redirect"
KIND_OK = "ok"

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
DENIED_STATUSES = frozenset({401, 403})

# "404 Client Error", "HTTP/1.1 503", "status 409", "status_code=400", "(403)"
_STATUS_PATTERNS = [
    re.compile(r'\b([1-5]\d\d) (?:Client|Server) Error\b'),
    re.compile(r'\bHTTP/\d(?:\.\d)?\s+([1-5]\d\d)\b'),
    re.compile(r'\bstatus(?:[ _]?code)?\s*[:=]?\s*([1-5]\d\d)\b', re.IGNORECASE),
    re.compile(r'\(([1-5]\d\d)\)'),
]

_MESSAGE_FIELDS = ('message', 'error', 'error_description')


def classify_status(status_code):
    """
    Map an HTTP status to an error kind.

    Args:
        status_code: HTTP status (0 for a connection-level failure)

    Returns:
        str: One of the KIND_* constants
    """
    if not status_code:
        return KIND_CONNECTION
    if status_code in RETRYABLE_STATUSES:
        return KIND_RETRYABLE
    if status_code in DENIED_STATUSES:
        return KIND_DENIED
    if 400 <= status_code < 500:
        return KIND_CLIENT
    if status_code >= 500:
        return KIND_SERVER
    if 300 <= status_code < 400:
        return KIND_REDIRECT
    return KIND_OK


class NormalizedError(Exception):
    """
    Single error shape for every failed API call.

    status_code == 0 means no HTTP response was received.
    The endpoint and message are always redacted.
    """

    def __init__(self, side, endpoint, status_code, message):
        self.side = side
        self.endpoint = endpoint
        self.status_code = status_code
        self.message = message
        super().__init__(str(self))

    def __str__(self):
        status = self.status_code if self.status_code else "connection error"
        return f"[{self.side}] {self.endpoint} ({status}): {self.message}"

    @property
    def kind(self):
        return classify_status(self.status_code)

    @property
    def retryable(self):
        return self.kind in (KIND_RETRYABLE, KIND_CONNECTION)

    @property
    def denied(self):
        return self.kind == KIND_DENIED


class FallbackParseError(Exception):
    """The curl fallback produced a body that could not be decoded."""


class NotInitializedError(RuntimeError):
    """An API call was attempted before the credential context was set."""


def normalize_error(raw, side, endpoint, redactor=None):
    """
    Build a NormalizedError from whatever a failed call produced.

    Never raises: on any extraction problem the result carries status 0
    and the best message available.

    Args:
        raw: Response object, exception, NormalizedError or plain string
        side: API side ('source' or 'dest')
        endpoint: Request URL or path
        redactor: Callable masking secrets (defaults to pattern-only redaction)

    Returns:
        NormalizedError
    """
    scrub = redactor or redact
    safe_endpoint = _safe(scrub, endpoint)

    if isinstance(raw, NormalizedError):
        return NormalizedError(side, safe_endpoint, raw.status_code, _safe(scrub, raw.message))

    status = 0
    message = ""
    try:
        status = _extract_status(raw)
        message = _extract_message(raw)
    except Exception as e:
        message = message or f"{type(e).__name__} while reading failure: {e}"

    if not message:
        message = f"HTTP {status}" if status else "Unknown error"

    return NormalizedError(side, safe_endpoint, status, _safe(scrub, message))


def _safe(scrub, text):
    try:
        return scrub(text)
    except Exception:
        return redact(text)


def _extract_status(raw):
    """Find an HTTP status on a response, an exception or in text."""
    if getattr(raw, 'connection_level', False):
        return 0

    status = _int_or_none(getattr(raw, 'status_code', None))
    if status:
        return status

    response = getattr(raw, 'response', None)
    if response is not None:
        status = _int_or_none(getattr(response, 'status_code', None))
        if status:
            return status

    text = raw if isinstance(raw, str) else str(raw)
    for pattern in _STATUS_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    return 0


def _extract_message(raw):
    """
    Prefer a JSON error body ('message', then 'error', then
    'error_description'); fall back to the raw text.
    """
    body_text = None
    if isinstance(raw, str):
        body_text = raw
    else:
        body_text = _response_text(raw)
        if body_text is None:
            body_text = _response_text(getattr(raw, 'response', None))

    parsed = _message_from_json(body_text) if body_text else None
    if parsed:
        return parsed

    if not isinstance(raw, str) and not hasattr(raw, 'status_code'):
        text = str(raw)
        if text:
            return text
    if body_text:
        return body_text.strip()[:500]
    return "" if hasattr(raw, 'status_code') else str(raw)


def _response_text(obj):
    if obj is None:
        return None
    text = getattr(obj, 'text', None)
    if isinstance(text, str):
        return text
    return None


def _message_from_json(text):
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    for field in _MESSAGE_FIELDS:
        value = data.get(field)
        if value:
            return _flatten_message(value)
    return None


def _flatten_message(value):
    """GitLab validation errors come as {"name": ["has already been taken"]}."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        parts = []
        for key, item in value.items():
            if isinstance(item, list):
                item = ", ".join(str(v) for v in item)
            parts.append(f"{key} {item}")
        return "; ".join(parts)
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    return str(value)


def _int_or_none(value):
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
