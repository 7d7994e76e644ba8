"""
Secret redaction for anything headed to logs or error messages
Masks registered secrets plus well-known token shapes
"""
import re

MASK = "***"

# Applied in order, after exact secrets have been replaced
_TOKEN_PATTERNS = [
    # GitLab personal/project/deploy tokens
    (re.compile(r'\bgl(?:pat|ptt|dt|rt|cbt)-[A-Za-z0-9_\-]{8,}'), MASK),
    # GitHub tokens
    (re.compile(r'\bgh[pousr]_[A-Za-z0-9]{20,}'), MASK),
    # Authorization: Basic <b64> / Bearer <token>
    (re.compile(r'(Authorization\s*[:=]\s*"?(?:Basic|Bearer|token)\s+)[^\s",;]+', re.IGNORECASE), r'\1' + MASK),
    # PRIVATE-TOKEN header
    (re.compile(r'(PRIVATE-TOKEN\s*[:=]\s*"?)[^\s",;]+', re.IGNORECASE), r'\1' + MASK),
    # Token query parameters
    (re.compile(r'((?:private_token|access_token|api_key|password)=)[^&\s"]+', re.IGNORECASE), r'\1' + MASK),
    # Credentials in URL userinfo (user:secret@host)
    (re.compile(r'(://[^:/@\s]+:)[^@/\s]+@'), r'\1' + MASK + '@'),
    # Long opaque strings used as URL userinfo (token@host)
    (re.compile(r'(://)[A-Za-z0-9_\-]{20,}@'), r'\1' + MASK + '@'),
]


def redact(text, known_secret=None, enabled=True):
    """
    Mask secrets in a piece of text.

    Idempotent: redact(redact(x)) == redact(x). Never raises.

    Args:
        text: Text to redact (non-strings are converted with str())
        known_secret: A secret (or iterable of secrets) to mask wherever it appears
        enabled: When False, text is returned unchanged

    Returns:
        str: Redacted text ('' for None/empty input)
    """
    if text is None:
        return ""
    try:
        result = text if isinstance(text, str) else str(text)
        if not result or not enabled:
            return result

        secrets = _as_secret_list(known_secret)
        # Repeat until stable: a replacement can complete a new match (e.g. "x" + MASK).
        # Each change drops non-mask characters or shortens a mask run, so this ends.
        previous = None
        while result != previous:
            previous = result
            result = _redact_once(result, secrets)
        return result
    except Exception:
        return MASK


def _redact_once(text, secrets):
    for secret in secrets:
        text = text.replace(secret, MASK)
    for pattern, replacement in _TOKEN_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _as_secret_list(known_secret):
    """Normalize the known_secret argument to a list of maskable strings."""
    if not known_secret:
        return []
    if isinstance(known_secret, str):
        candidates = [known_secret]
    else:
        candidates = [s for s in known_secret if isinstance(s, str)]

    # Longest first so a secret containing another secret is masked whole.
    # Secrets that are part of the mask itself would break idempotency.
    return sorted(
        (s for s in candidates if s and s not in MASK),
        key=len,
        reverse=True
    )


class SecretRedactor:
    """
    Redactor bound to a fixed set of secrets.

    Built once from the credential context and shared read-only.
    """

    def __init__(self, secrets=None, enabled=True):
        """
        Args:
            secrets: Iterable of secret strings to mask
            enabled: Disable to pass text through untouched
        """
        self._secrets = tuple(s for s in (secrets or ()) if s)
        self.enabled = enabled

    def __call__(self, text):
        return redact(text, self._secrets, enabled=self.enabled)

    def redact(self, text):
        """Redact text with the registered secrets."""
        return self(text)
