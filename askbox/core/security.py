"""Security utilities: token encryption, request signatures, OAuth state."""

import hashlib
import hmac
import logging
import secrets
import time
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from .config import get_settings

logger = logging.getLogger(__name__)

# Slack rejects requests older than this; we do the same to prevent replays
SIGNATURE_MAX_AGE_SECONDS = 60 * 5
OAUTH_STATE_MAX_AGE_SECONDS = 60 * 10


# =============================================================================
# TOKEN ENCRYPTION
# =============================================================================


@lru_cache
def get_fernet() -> Fernet:
    """Get the Fernet instance used for tokens at rest."""
    settings = get_settings()
    if settings.encryption_key:
        return Fernet(settings.encryption_key.encode())

    logger.warning(
        "ENCRYPTION_KEY not configured - using an ephemeral key, "
        "stored tokens will be unreadable after a restart"
    )
    return Fernet(Fernet.generate_key())


def mask_token(token: str | None) -> str:
    """Short, non-identifying prefix of a token for log lines."""
    if not token:
        return "<none>"
    return f"{token[:8]}..."


def encrypt_token(token: str, fernet: Fernet | None = None) -> str:
    """Encrypt a token for storage. Every call uses a fresh IV."""
    f = fernet or get_fernet()
    return f.encrypt(token.encode()).decode()


def decrypt_token(encrypted: str | None, fernet: Fernet | None = None) -> str | None:
    """
    Decrypt a stored token.

    Returns None when the ciphertext cannot be read (wrong key, corrupted row).
    """
    if not encrypted:
        return None

    f = fernet or get_fernet()
    try:
        return f.decrypt(encrypted.encode()).decode()
    except (InvalidToken, ValueError) as e:
        logger.error(f"Stored token failed integrity check, treating as absent: {type(e).__name__}")
        return None


# =============================================================================
# SLACK REQUEST SIGNATURES
# =============================================================================


def compute_slack_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    """Compute the v0 signature Slack sends in X-Slack-Signature."""
    # Raw bytes: the body is not trusted to be valid UTF-8 yet
    sig_basestring = b"v0:" + timestamp.encode() + b":" + body
    return "v0=" + hmac.new(
        signing_secret.encode(),
        sig_basestring,
        hashlib.sha256,
    ).hexdigest()


def verify_slack_signature(
    body: bytes,
    timestamp: str,
    signature: str,
    signing_secret: str | None = None,
    now: float | None = None,
) -> bool:
    """
    Verify Slack request signature using HMAC-SHA256.

    See: https://api.slack.com/authentication/verifying-requests-from-slack
    """
    secret = signing_secret or get_settings().slack_signing_secret
    if not secret:
        logger.warning("Slack signing secret not configured")
        return False

    try:
        request_timestamp = int(timestamp)
    except ValueError:
        return False

    current = time.time() if now is None else now
    if abs(current - request_timestamp) > SIGNATURE_MAX_AGE_SECONDS:
        logger.warning("Slack request timestamp too old")
        return False

    expected_sig = compute_slack_signature(secret, timestamp, body)
    return hmac.compare_digest(expected_sig, signature)


# =============================================================================
# OAUTH STATE
# =============================================================================


def create_oauth_state(secret: str, now: float | None = None) -> str:
    """Create a signed, timestamped state value for the OAuth redirect."""
    issued = str(int(time.time() if now is None else now))
    nonce = secrets.token_urlsafe(8)
    payload = f"{issued}.{nonce}"
    mac = hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()[:32]
    return f"{payload}.{mac}"


def verify_oauth_state(state: str, secret: str, now: float | None = None) -> bool:
    """Check the state value came from us and is recent."""
    try:
        issued, nonce, mac = state.split(".")
        issued_at = int(issued)
    except ValueError:
        return False

    current = time.time() if now is None else now
    if current - issued_at > OAUTH_STATE_MAX_AGE_SECONDS:
        return False

    expected = hmac.new(secret.encode(), f"{issued}.{nonce}".encode(), hashlib.sha256).hexdigest()[:32]
    return hmac.compare_digest(expected, mac)
