"""
REST core shared by the GitLab and Azure DevOps clients
Single entry point for calls, paginated listings and ensure operations
"""
import time

from migration_core.clients.curl_transport import CurlTransport
from migration_core.clients.errors import NotInitializedError
from migration_core.clients.pagination import GITLAB_PAGES, PaginatedAggregator
from migration_core.clients.retry import RetryOrchestrator
from migration_core.clients.transport import DEFAULT_CONTENT_TYPE, ApiRequest, RequestsTransport
from migration_core.logging.logger import get_logger
from migration_core.provisioning.ensure import ensure as ensure_resource
from migration_core.utils.redaction import SecretRedactor

logger = get_logger("rest")


class RestClient:
    """
    Resilient REST client for both migration sides.

    Features:
    - Per-side base URLs and auth (token header or HTTP Basic)
    - Retry with jittered backoff, 401/403 returned as denials
    - curl fallback for TLS failures when verification is disabled
    - Header-driven pagination
    - Idempotent ensure (lookup, create on miss, absorb duplicate races)

    Must be initialized with a CredentialContext before any call.
    """

    def __init__(self, context=None, primary=None, fallback=None, on_request=None,
                 sleep=time.sleep, rng=None):
        """
        Initialize REST client.

        Args:
            context: CredentialContext (may be supplied later via initialize())
            primary: Primary transport override (default: RequestsTransport)
            fallback: Fallback transport override (default: CurlTransport)
            on_request: Callback receiving a RequestEvent per attempt
            sleep: Sleep function used for backoff
            rng: Random source used for jitter
        """
        self._primary_override = primary
        self._fallback_override = fallback
        self._on_request = on_request
        self._sleep = sleep
        self._rng = rng
        self.context = None
        self.redactor = None
        self._orchestrator = None
        self._aggregator = None
        if context is not None:
            self.initialize(context)

    def initialize(self, context):
        """
        Bind the credential context and build the transport stack.

        Args:
            context: CredentialContext
        """
        self.context = context
        self.redactor = SecretRedactor(context.secrets(), enabled=context.redact_secrets)
        primary = self._primary_override or RequestsTransport(context)
        fallback = self._fallback_override or CurlTransport(context)
        self._orchestrator = RetryOrchestrator(
            context,
            primary,
            fallback=fallback,
            redactor=self.redactor,
            on_request=self._on_request,
            sleep=self._sleep,
            rng=self._rng,
        )
        self._aggregator = PaginatedAggregator(self.call, page_size=context.page_size)
        logger.debug(f"REST client initialized: {context!r}")

    @property
    def initialized(self):
        return self._orchestrator is not None

    def _require_initialized(self):
        if not self.initialized:
            raise NotInitializedError("RestClient.initialize(context) must be called before any API call")

    def url_for(self, side, endpoint):
        """
        Resolve an endpoint against the side's base URL.

        Absolute URLs are returned unchanged.
        """
        self._require_initialized()
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return f"{self.context.base_url(side)}/{endpoint.lstrip('/')}"

    def call(self, side, method, endpoint, body=None, params=None, content_type=DEFAULT_CONTENT_TYPE):
        """
        Issue one logical API call with retries.

        Args:
            side: 'source' or 'dest'
            method: HTTP method
            endpoint: Path relative to the side's base URL, or absolute URL
            body: JSON body (optional)
            params: Query parameters (optional)
            content_type: Body content type

        Returns:
            CallResult: Success (ITEMS/SINGLE/EMPTY) or DENIED

        Raises:
            NotInitializedError: initialize() was not called
            NormalizedError: Fatal error or retries exhausted
        """
        self._require_initialized()
        request = ApiRequest(side, method, self.url_for(side, endpoint), params=params, body=body,
                             content_type=content_type)
        return self._orchestrator.execute(request)

    def fetch_all(self, side, endpoint, query=None, scheme=GITLAB_PAGES):
        """
        Fetch every page of a listing.

        Returns:
            FetchResult: (items, meta, denied); items is None when denied
        """
        self._require_initialized()
        return self._aggregator.fetch_all(side, endpoint, query, scheme=scheme)

    def ensure(self, lookup, create, identity, tracker=None, resource_type="resource"):
        """Idempotent lookup-or-create (see provisioning.ensure)."""
        return ensure_resource(lookup, create, identity, tracker=tracker, resource_type=resource_type)

    def redact(self, text):
        """Mask registered secrets and token shapes in text."""
        self._require_initialized()
        return self.redactor(text)
