"""
Primary HTTP transport (requests)
Sends one request and reports connection failures with a structured kind
"""
import json

import requests
from requests.structures import CaseInsensitiveDict

FAILURE_TLS = "tls"
FAILURE_RESET = "reset"
FAILURE_TIMEOUT = "timeout"
FAILURE_CONNECT = "connect"
FAILURE_SEND = "send"
FAILURE_UNAVAILABLE = "unavailable"
FAILURE_OTHER = "other"

DEFAULT_CONTENT_TYPE = "application/json"


class ApiRequest:
    """
    One logical request, replayable on any transport.

    Attributes:
        side: 'source' or 'dest'
        method: HTTP method
        url: Absolute URL
        params: Query parameters (dict)
        body: JSON-serializable body or None
        content_type: Content-Type for the body
    """

    def __init__(self, side, method, url, params=None, body=None, content_type=DEFAULT_CONTENT_TYPE):
        self.side = side
        self.method = method.upper()
        self.url = url
        self.params = dict(params or {})
        self.body = body
        self.content_type = content_type

    def encoded_body(self):
        """Body as a JSON string (None when there is no body)."""
        if self.body is None:
            return None
        if isinstance(self.body, (str, bytes)):
            return self.body if isinstance(self.body, str) else self.body.decode('utf-8')
        return json.dumps(self.body)

    def full_url(self):
        """URL with query parameters encoded, as sent on the wire."""
        if not self.params:
            return self.url
        prepared = requests.Request('GET', self.url, params=self.params).prepare()
        return prepared.url

    def __repr__(self):
        return f"ApiRequest({self.method} {self.url})"


class HttpResponse:
    """Transport-neutral HTTP response."""

    def __init__(self, status_code, headers=None, text=""):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        self.text = text or ""
        self._body = None
        self._decoded = False

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    @property
    def body(self):
        """Decoded JSON body, None when empty."""
        if not self._decoded:
            self._body = json.loads(self.text) if self.text.strip() else None
            self._decoded = True
        return self._body

    def json(self):
        return self.body

    def __repr__(self):
        return f"HttpResponse(status={self.status_code})"


class TransportFailure(Exception):
    """
    The transport could not obtain an HTTP response.

    kind is one of the FAILURE_* constants.
    """

    connection_level = True

    def __init__(self, kind, message, cause=None):
        self.kind = kind
        self.message = message
        self.cause = cause
        super().__init__(message)


def classify_request_exception(exc):
    """
    Map a requests exception to a failure kind.

    Args:
        exc: requests.exceptions.RequestException

    Returns:
        str: FAILURE_* constant
    """
    if isinstance(exc, requests.exceptions.SSLError):
        return FAILURE_TLS
    if isinstance(exc, requests.exceptions.Timeout):
        return FAILURE_TIMEOUT
    if isinstance(exc, requests.exceptions.ConnectionError):
        if _caused_by(exc, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)):
            return FAILURE_RESET
        return FAILURE_CONNECT
    if isinstance(exc, requests.exceptions.RequestException):
        return FAILURE_SEND
    return FAILURE_OTHER


def _caused_by(exc, types):
    """Walk args/__cause__/__context__ looking for a given exception type."""
    seen = set()
    stack = [exc]
    while stack:
        current = stack.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, types):
            return True
        if isinstance(current, BaseException):
            stack.extend([current.__cause__, current.__context__, getattr(current, 'reason', None)])
            stack.extend(arg for arg in current.args if isinstance(arg, BaseException))
    return False


class RequestsTransport:
    """
    Primary transport built on a requests.Session.

    Uses the session's native TLS stack with verification settings from
    the credential context.
    """

    name = "requests"

    def __init__(self, context, session=None):
        """
        Args:
            context: CredentialContext
            session: Optional requests.Session (a new one is created otherwise)
        """
        self.context = context
        self.session = session or requests.Session()

    def send(self, request):
        """
        Issue one HTTP request.

        Args:
            request: ApiRequest

        Returns:
            HttpResponse: Any HTTP status, including errors

        Raises:
            TransportFailure: No HTTP response was received
        """
        headers = {"Accept": "application/json"}
        headers.update(self.context.auth_headers(request.side))
        data = request.encoded_body()
        if data is not None:
            headers["Content-Type"] = request.content_type

        try:
            response = self.session.request(
                request.method,
                request.url,
                headers=headers,
                params=request.params or None,
                data=data.encode('utf-8') if data is not None else None,
                verify=self.context.verify,
                timeout=self.context.request_timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TransportFailure(classify_request_exception(e), str(e), cause=e) from e

        return HttpResponse(response.status_code, response.headers, response.text)
