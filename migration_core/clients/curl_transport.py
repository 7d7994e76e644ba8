"""
Fallback HTTP transport (curl subprocess)
Used when the primary TLS stack fails against servers with self-signed certificates
"""
import re
import subprocess

from migration_core.clients.errors import FallbackParseError
from migration_core.clients.transport import FAILURE_UNAVAILABLE, HttpResponse, TransportFailure
from migration_core.logging.logger import get_logger

logger = get_logger("curl")

STATUS_MARKER = "__HTTP_STATUS__:"

_MARKER_RE = re.compile(re.escape(STATUS_MARKER) + r'(\d{3})\s*$')
_STATUS_LINE_RE = re.compile(r'^HTTP/\d(?:\.\d)?\s+\d{3}')
_HEADER_LINE_RE = re.compile(r'^[A-Za-z0-9!#$%&\'*+.^_`|~-]+:\s?')

# curl -sS reports transfer failures as "curl: (N) <reason>"
_NETWORK_ERROR_RE = re.compile(r'^curl: \(\d+\)', re.MULTILINE)

SYNTHETIC_UNAVAILABLE = 503


def _quote_config_value(value):
    """Quote a value for a curl config file line."""
    return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'


def build_curl_command(request, context):
    """
    Build the curl argument list and the config text fed on stdin.

    Auth and content headers travel in the stdin config (curl --config -)
    so secrets never show up in the process list.

    Args:
        request: ApiRequest
        context: CredentialContext

    Returns:
        tuple: (argv list, config text)
    """
    argv = [
        "curl", "-sS", "-k", "-i", "-L",
        "-X", request.method,
        "--config", "-",
        "--max-time", str(int(context.fallback_timeout)),
        "-w", "\n" + STATUS_MARKER + "%{http_code}",
    ]

    headers = {"Accept": "application/json"}
    headers.update(context.auth_headers(request.side))
    data = request.encoded_body()
    if data is not None:
        headers["Content-Type"] = request.content_type
        argv.extend(["--data-binary", data])

    config_lines = [f"header = {_quote_config_value(f'{name}: {value}')}" for name, value in headers.items()]
    config_lines.append(f"url = {_quote_config_value(request.full_url())}")

    return argv, "\n".join(config_lines) + "\n"


def parse_curl_output(output):
    """
    Decode combined curl output into an HttpResponse.

    Expects 'curl -i' output followed by the injected status marker.
    Header blocks (including interim 1xx / proxy CONNECT blocks) are skipped;
    the body starts at the first line beginning with '{' or '['.

    Args:
        output: Combined stdout/stderr text

    Returns:
        HttpResponse: Decoded response. Empty body with network-error output
        is reported as a synthetic 503.

    Raises:
        FallbackParseError: Body present but not valid JSON
    """
    text = (output or "").rstrip()
    status = 0
    match = _MARKER_RE.search(text)
    if match:
        status = int(match.group(1))
        text = text[:match.start()]

    lines = text.splitlines()
    headers = {}
    body_start = None
    for index, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith('{') or stripped.startswith('['):
            body_start = index
            break
        if _STATUS_LINE_RE.match(stripped):
            # A new header block starts; keep only the last one
            headers = {}
            continue
        if _HEADER_LINE_RE.match(stripped):
            name, _, value = stripped.partition(':')
            headers[name.strip()] = value.strip()

    body = "\n".join(lines[body_start:]).strip() if body_start is not None else ""

    if not body:
        if status == 0 or (status < 400 and _NETWORK_ERROR_RE.search(text)):
            return HttpResponse(SYNTHETIC_UNAVAILABLE, headers,
                                '{"message": "Fallback transport network error"}')
        if 400 <= status < 500:
            return HttpResponse(status, headers,
                                '{"message": "HTTP %d returned no body"}' % status)
        return HttpResponse(status, headers, "")

    response = HttpResponse(status, headers, body)
    try:
        response.body
    except ValueError as e:
        raise FallbackParseError(f"Invalid JSON from fallback transport (HTTP {status}): {e}") from e
    return response


class CurlTransport:
    """
    Fallback transport that shells out to curl with verification disabled.

    Same interface as the primary transport: send(request) -> HttpResponse.
    """

    name = "curl"

    def __init__(self, context, executable="curl", runner=None):
        """
        Args:
            context: CredentialContext
            executable: curl binary name or path
            runner: subprocess.run replacement (tests)
        """
        self.context = context
        self.executable = executable
        self.runner = runner or subprocess.run

    def send(self, request):
        """
        Issue the request through curl.

        Returns:
            HttpResponse

        Raises:
            TransportFailure: curl is not installed
            FallbackParseError: Output could not be decoded
        """
        argv, config_text = build_curl_command(request, self.context)
        argv[0] = self.executable

        try:
            completed = self.runner(
                argv,
                input=config_text,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.context.fallback_timeout,
            )
        except FileNotFoundError as e:
            raise TransportFailure(FAILURE_UNAVAILABLE, f"'{self.executable}' executable not found in PATH", cause=e) from e
        except subprocess.TimeoutExpired:
            logger.warning(f"curl timed out after {self.context.fallback_timeout}s")
            return HttpResponse(SYNTHETIC_UNAVAILABLE, {},
                                '{"message": "Fallback transport timed out"}')

        return parse_curl_output(completed.stdout)
