"""
Tagged result of a single API call
Resolved once at the transport boundary so callers match on the tag
"""

ITEMS = "items"
SINGLE = "single"
EMPTY = "empty"
DENIED = "denied"


class CallResult:
    """
    Outcome of a logical API call that did not raise.

    Attributes:
        tag: ITEMS (JSON array), SINGLE (JSON object), EMPTY (no body) or DENIED (401/403)
        status_code: Final HTTP status
        headers: Response headers (case-insensitive mapping)
        body: Decoded JSON body (None for EMPTY/DENIED)
        error: NormalizedError describing a denial
        attempts: Transport invocations spent on this call
        transport: Name of the transport that produced the final response
    """

    def __init__(self, tag, status_code, headers=None, body=None, error=None, attempts=1,
                 transport=None):
        self.tag = tag
        self.status_code = status_code
        self.headers = headers if headers is not None else {}
        self.body = body
        self.error = error
        self.attempts = attempts
        self.transport = transport

    @classmethod
    def from_response(cls, response, attempts=1, transport=None):
        """Tag a successful HttpResponse by the shape of its body."""
        body = response.body
        if body is None:
            tag = EMPTY
        elif isinstance(body, list):
            tag = ITEMS
        else:
            tag = SINGLE
        return cls(tag, response.status_code, response.headers, body,
                   attempts=attempts, transport=transport)

    @classmethod
    def denied(cls, error, headers=None, attempts=1, transport=None):
        return cls(DENIED, error.status_code, headers, None, error=error,
                   attempts=attempts, transport=transport)

    @property
    def is_denied(self):
        return self.tag == DENIED

    def items(self, items_key=None):
        """
        Body as a list.

        An array is returned as-is, an object or scalar becomes a one-item
        list (or the list under items_key for enveloped listings), no body is [].
        """
        if self.tag == ITEMS:
            return list(self.body)
        if self.tag == SINGLE:
            if items_key and isinstance(self.body, dict) and isinstance(self.body.get(items_key), list):
                return list(self.body[items_key])
            return [self.body]
        return []

    def __repr__(self):
        return f"CallResult(tag={self.tag!r}, status={self.status_code}, attempts={self.attempts})"
