"""Secret generation — random tokens and the VAPID push-signing keypair.

Every call draws fresh material; nothing is cached or derived from earlier
runs. Regenerating secrets for a live instance invalidates its sessions.
"""

from __future__ import annotations

import base64
import secrets
import string

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from fedideploy.domain.deployment import SecretBundle

# Letters and digits only: no '/', '=' or '+'.
TOKEN_ALPHABET = string.ascii_letters + string.digits

SESSION_SECRET_LENGTH = 128


class SecretGenerationError(RuntimeError):
    """The secure random source or the crypto backend is unavailable."""


def generate_token(length: int) -> str:
    """Return *length* characters drawn from :data:`TOKEN_ALPHABET`.

    Raises:
        ValueError: *length* is less than 1.
        SecretGenerationError: The OS random source is unavailable.
    """
    if length < 1:
        msg = "Token length must be at least 1"
        raise ValueError(msg)
    try:
        return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))
    except (NotImplementedError, OSError) as exc:
        msg = f"Secure random source unavailable: {exc}"
        raise SecretGenerationError(msg) from exc


def _urlsafe(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_vapid_keypair() -> tuple[str, str]:
    """Generate a P-256 keypair in the encoding Mastodon's web push expects.

    Returns:
        ``(private_key, public_key)``: the raw 32-byte private scalar and the
        65-byte uncompressed public point, both URL-safe base64 unpadded.
    """
    try:
        private_key = ec.generate_private_key(ec.SECP256R1())
    except (NotImplementedError, OSError) as exc:
        msg = f"Could not generate VAPID keypair: {exc}"
        raise SecretGenerationError(msg) from exc

    private_raw = private_key.private_numbers().private_value.to_bytes(32, "big")
    public_raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    return _urlsafe(private_raw), _urlsafe(public_raw)


def generate_secret_bundle() -> SecretBundle:
    """Generate a complete set of application secrets."""
    vapid_private, vapid_public = generate_vapid_keypair()
    return SecretBundle(
        secret_key_base=generate_token(SESSION_SECRET_LENGTH),
        otp_secret=generate_token(SESSION_SECRET_LENGTH),
        vapid_private_key=vapid_private,
        vapid_public_key=vapid_public,
    )
