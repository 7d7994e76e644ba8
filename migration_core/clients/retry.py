"""
Retry orchestration for API calls
Bounded jittered backoff, 401/403 denial results and the curl TLS fallback
"""
import random
import re
import time
from collections import namedtuple

from migration_core.clients.errors import (
    KIND_CLIENT,
    KIND_DENIED,
    KIND_OK,
    KIND_REDIRECT,
    KIND_RETRYABLE,
    FallbackParseError,
    NormalizedError,
    classify_status,
    normalize_error,
)
from migration_core.clients.results import CallResult
from migration_core.clients.transport import (
    FAILURE_OTHER,
    FAILURE_RESET,
    FAILURE_SEND,
    FAILURE_TLS,
    FAILURE_UNAVAILABLE,
    HttpResponse,
    TransportFailure,
)
from migration_core.logging.logger import get_logger, log_request_event
from migration_core.utils.redaction import redact

logger = get_logger("retry")

# Failure kinds that switch the call over to the fallback transport
FALLBACK_KINDS = frozenset({FAILURE_TLS, FAILURE_RESET, FAILURE_SEND})

# Used only when the primary transport could not classify the failure
_FALLBACK_MESSAGE_RE = re.compile(r'reset|certificate|ssl|tls|handshake|send', re.IGNORECASE)

JITTER_RATIO = 0.2

RequestEvent = namedtuple(
    "RequestEvent",
    ["method", "url", "attempt", "status", "duration_ms", "transport"]
)


def compute_backoff(attempt, base_delay, rng=random, max_delay=None):
    """
    Exponential backoff with proportional jitter.

    delay = base_delay * 2^(attempt-1), plus uniform(0, 0.2 * delay).

    Args:
        attempt: 1-based attempt number that just failed
        base_delay: Base delay in seconds
        rng: Random source with uniform()
        max_delay: Optional upper bound in seconds

    Returns:
        float: Seconds to wait before the next attempt
    """
    delay = base_delay * (2 ** (attempt - 1))
    delay += rng.uniform(0, JITTER_RATIO * delay)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


def _parse_retry_after(headers):
    value = headers.get("Retry-After") if headers else None
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None


class RetryOrchestrator:
    """
    Drives one logical request through the primary transport, switching to
    the fallback transport on TLS/connection failures when verification is
    disabled.

    Outcomes:
        - 2xx: CallResult (ITEMS / SINGLE / EMPTY)
        - 401/403: CallResult tagged DENIED, never retried, never raised
        - 429/500/502/503/504 and connection failures: retried up to
          max_attempts times, then NormalizedError is raised
        - any other status: NormalizedError raised after one attempt,
          including a 3xx the transport did not follow
    """

    def __init__(self, context, primary, fallback=None, redactor=None, on_request=None,
                 sleep=time.sleep, rng=None, clock=time.monotonic):
        """
        Args:
            context: CredentialContext (max_attempts, base_delay, tls_skip_verify)
            primary: Transport with send(request) -> HttpResponse
            fallback: Optional transport used on TLS/connection failures
            redactor: Callable masking secrets in URLs and messages
            on_request: Callback receiving a RequestEvent per attempt
            sleep: Sleep function (injected in tests)
            rng: Random source for jitter
            clock: Monotonic clock in seconds
        """
        self.context = context
        self.primary = primary
        self.fallback = fallback
        self.redactor = redactor
        self.on_request = on_request if on_request is not None else log_request_event
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.clock = clock

    @property
    def max_total_attempts(self):
        return self.context.max_attempts + 1

    def execute(self, request):
        """
        Run a request to completion.

        Args:
            request: ApiRequest

        Returns:
            CallResult: Success or denial

        Raises:
            NormalizedError: Fatal client error or retries exhausted
        """
        transport = self.primary
        endpoint = request.url
        last_error = None

        attempt = 0
        while attempt < self.max_total_attempts:
            attempt += 1
            started = self.clock()
            response = None
            failure = None

            try:
                response = transport.send(request)
            except TransportFailure as e:
                failure = e
            except FallbackParseError as e:
                logger.warning(f"Unreadable fallback response, treating as retryable: {self._scrub(e)}")
                response = HttpResponse(503, {}, "")

            # 2xx with a non-JSON body (proxy error page, truncated payload)
            if response is not None and classify_status(response.status_code) == KIND_OK:
                try:
                    response.body
                except ValueError:
                    logger.warning(f"Malformed JSON body from {self._scrub(endpoint)}, treating as retryable")
                    response = HttpResponse(503, response.headers, "")

            duration_ms = (self.clock() - started) * 1000
            self._emit(request, attempt, None if response is None else response.status_code,
                       duration_ms, transport)

            if failure is not None:
                last_error = normalize_error(failure, request.side, endpoint, self.redactor)

                if transport is self.primary and self._should_fall_back(failure):
                    logger.warning(
                        f"{request.method} {self._scrub(endpoint)}: {failure.kind} failure on primary transport, "
                        f"re-issuing through {self.fallback.name}"
                    )
                    transport = self.fallback
                    continue

                if transport is self.fallback and failure.kind == FAILURE_UNAVAILABLE:
                    logger.error(f"Fallback transport unavailable: {failure.message}")
                    transport = self.primary

                if attempt < self.max_total_attempts:
                    self._backoff(attempt, None, request, last_error)
                continue

            status = response.status_code
            kind = classify_status(status)

            if kind == KIND_OK:
                return CallResult.from_response(response, attempts=attempt, transport=transport.name)

            error = normalize_error(response, request.side, endpoint, self.redactor)

            if kind == KIND_DENIED:
                logger.warning(f"Access denied ({status}) for {request.method} {error.endpoint}")
                return CallResult.denied(error, headers=response.headers, attempts=attempt,
                                         transport=transport.name)

            if kind == KIND_RETRYABLE:
                last_error = error
                if attempt < self.max_total_attempts:
                    self._backoff(attempt, response.headers, request, error)
                continue

            if kind == KIND_REDIRECT:
                location = self._scrub(response.headers.get("Location") or "unknown location")
                logger.error(f"Unfollowed redirect for {request.method}: {error} -> {location}")
            elif kind == KIND_CLIENT:
                logger.error(f"Client error for {request.method}: {error}")
            else:
                logger.error(f"Server error for {request.method}: {error}")
            raise error

        if last_error is None:
            last_error = NormalizedError(request.side, self._scrub(endpoint), 0, "No attempts were made")
        logger.error(f"Giving up after {attempt} attempt(s): {last_error}")
        raise last_error

    def _should_fall_back(self, failure):
        """
        Decide whether a primary failure goes to the fallback transport.

        Requires TLS verification to be disabled and a fallback to exist;
        then structured failure kinds decide, with a message check only
        for unclassified failures.
        """
        if self.fallback is None or not self.context.tls_skip_verify:
            return False
        if failure.kind in FALLBACK_KINDS:
            return True
        if failure.kind == FAILURE_OTHER:
            return bool(_FALLBACK_MESSAGE_RE.search(failure.message or ""))
        return False

    def _backoff(self, attempt, headers, request, error):
        delay = compute_backoff(attempt, self.context.base_delay, self.rng, self.context.max_delay)
        retry_after = _parse_retry_after(headers)
        if retry_after is not None:
            delay = min(max(delay, retry_after), self.context.max_delay)
        logger.warning(
            f"{request.method} {error.endpoint} failed ({error.status_code or 'connection error'}), "
            f"retry {attempt}/{self.context.max_attempts} in {delay:.2f}s"
        )
        self.sleep(delay)

    def _emit(self, request, attempt, status, duration_ms, transport):
        event = RequestEvent(
            method=request.method,
            url=self._scrub(request.full_url()),
            attempt=attempt,
            status=status,
            duration_ms=duration_ms,
            transport=getattr(transport, "name", type(transport).__name__),
        )
        try:
            self.on_request(event)
        except Exception as e:
            logger.debug(f"Request event callback failed: {e}")

    def _scrub(self, text):
        if self.redactor is not None:
            return self.redactor(text)
        return redact(text)
