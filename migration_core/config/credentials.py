"""
Credential context shared by every API call
Built once at startup from the loaded configuration, read-only afterwards
"""
import base64

SOURCE = "source"
DEST = "dest"
SIDES = (SOURCE, DEST)

AUTH_TOKEN = "token"
AUTH_BASIC = "basic"

DEFAULT_AUTH_SCHEMES = {SOURCE: AUTH_TOKEN, DEST: AUTH_BASIC}


class CredentialContext:
    """
    Immutable credential and transport settings.

    Holds per-side base URLs, secrets and auth schemes, plus TLS and retry
    tuning. Safe to share across worker threads.
    """

    def __init__(self, base_urls, tokens, tls_skip_verify=False, max_attempts=3,
                 base_delay=1.0, redact_secrets=True, auth_schemes=None, usernames=None,
                 ca_bundle=None, max_delay=60.0, page_size=100, request_timeout=60,
                 fallback_timeout=30):
        """
        Initialize credential context.

        Args:
            base_urls: {side: base URL}
            tokens: {side: secret}
            tls_skip_verify: Disable certificate verification (enables curl fallback)
            max_attempts: Retries after the first try
            base_delay: Backoff base delay in seconds
            redact_secrets: Mask secrets in logs and errors
            auth_schemes: {side: 'token' | 'basic'} (default: source=token, dest=basic)
            usernames: {side: username} for basic auth (default: empty user)
            ca_bundle: Path to a CA bundle used when verification is enabled
            max_delay: Upper bound for a single backoff delay in seconds
            page_size: Items requested per page when paginating
            request_timeout: Primary transport timeout in seconds
            fallback_timeout: Wall-clock limit for one curl invocation in seconds
        """
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")

        schemes = dict(DEFAULT_AUTH_SCHEMES)
        schemes.update(auth_schemes or {})
        for side, scheme in schemes.items():
            if scheme not in (AUTH_TOKEN, AUTH_BASIC):
                raise ValueError(f"Unsupported auth scheme for {side}: {scheme}")

        object.__setattr__(self, "_base_urls", {k: v.rstrip('/') for k, v in base_urls.items() if v})
        object.__setattr__(self, "_tokens", dict(tokens))
        object.__setattr__(self, "_auth_schemes", schemes)
        object.__setattr__(self, "_usernames", dict(usernames or {}))
        object.__setattr__(self, "tls_skip_verify", bool(tls_skip_verify))
        object.__setattr__(self, "ca_bundle", ca_bundle)
        object.__setattr__(self, "max_attempts", int(max_attempts))
        object.__setattr__(self, "base_delay", float(base_delay))
        object.__setattr__(self, "max_delay", float(max_delay))
        object.__setattr__(self, "redact_secrets", bool(redact_secrets))
        object.__setattr__(self, "page_size", int(page_size))
        object.__setattr__(self, "request_timeout", request_timeout)
        object.__setattr__(self, "fallback_timeout", fallback_timeout)

    def __setattr__(self, name, value):
        raise AttributeError("CredentialContext is read-only")

    def __delattr__(self, name):
        raise AttributeError("CredentialContext is read-only")

    def __repr__(self):
        return (f"CredentialContext(sides={sorted(self._base_urls)}, "
                f"tls_skip_verify={self.tls_skip_verify}, max_attempts={self.max_attempts})")

    # ===== Per-side accessors =====

    def base_url(self, side):
        """Base URL for a side."""
        try:
            return self._base_urls[side]
        except KeyError:
            raise ValueError(f"No base URL configured for side '{side}'") from None

    def token(self, side):
        return self._tokens.get(side)

    def auth_scheme(self, side):
        return self._auth_schemes.get(side, AUTH_TOKEN)

    def username(self, side):
        return self._usernames.get(side, "")

    def auth_headers(self, side):
        """
        Build the authentication header for a side.

        Token scheme sends PRIVATE-TOKEN, basic scheme sends HTTP Basic with
        the secret as password (the usual PAT convention).

        Returns:
            dict: Header name -> value (empty if no secret is configured)
        """
        secret = self.token(side)
        if not secret:
            return {}
        if self.auth_scheme(side) == AUTH_BASIC:
            raw = f"{self.username(side)}:{secret}"
            return {"Authorization": f"Basic {base64.b64encode(raw.encode()).decode()}"}
        return {"PRIVATE-TOKEN": secret}

    def secrets(self):
        """
        All secrets that must never reach a log line.

        Includes the encoded basic-auth values so an echoed header is masked too.
        """
        found = []
        for side, secret in self._tokens.items():
            if not secret:
                continue
            found.append(secret)
            if self.auth_scheme(side) == AUTH_BASIC:
                value = self.auth_headers(side)["Authorization"].split(" ", 1)[1]
                found.append(value)
        return tuple(found)

    @property
    def verify(self):
        """Value for the requests 'verify' argument."""
        if self.tls_skip_verify:
            return False
        return self.ca_bundle or True


def build_credential_context(config):
    """
    Build a CredentialContext from a loaded configuration dict.

    Expected sections: 'gitlab' (url, token), 'ado' (url, pat, username),
    and optional 'http' tuning (max_attempts, base_delay, max_delay,
    redact_secrets, page_size, request_timeout, fallback_timeout).

    A section's verify_ssl may be False (skip verification) or a CA bundle path.

    Args:
        config: Configuration dictionary (see config.yaml.example)

    Returns:
        CredentialContext: Ready-to-use context
    """
    gitlab = config.get('gitlab', {})
    ado = config.get('ado', {})
    http = config.get('http', {})

    tls_skip_verify = bool(http.get('skip_tls_verify', False))
    ca_bundle = None
    for section in (gitlab, ado):
        verify_ssl = section.get('verify_ssl', True)
        if verify_ssl is False:
            tls_skip_verify = True
        elif isinstance(verify_ssl, str):
            ca_bundle = verify_ssl

    return CredentialContext(
        base_urls={SOURCE: gitlab.get('url'), DEST: ado.get('url')},
        tokens={SOURCE: gitlab.get('token'), DEST: ado.get('pat')},
        usernames={DEST: ado.get('username', '')},
        tls_skip_verify=tls_skip_verify,
        ca_bundle=ca_bundle,
        max_attempts=http.get('max_attempts', 3),
        base_delay=http.get('base_delay', 1.0),
        max_delay=http.get('max_delay', 60.0),
        redact_secrets=http.get('redact_secrets', True),
        page_size=http.get('page_size', 100),
        request_timeout=http.get('request_timeout', 60),
        fallback_timeout=http.get('fallback_timeout', 30),
    )
