"""PKCE parameter generation (:rfc:`7636`).

One :class:`PkceParameters` instance belongs to exactly one login attempt:
the challenge goes into the authorization URL, the verifier into the code
exchange, and the state nonce is compared against the redirect to reject
forged or stale callbacks. Nothing here is ever persisted.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass

_VERIFIER_BYTES = 32
_STATE_BYTES = 16


@dataclass(frozen=True)
class PkceParameters:
    """Verifier, S256 challenge and anti-CSRF state for one login attempt."""

    code_verifier: str
    code_challenge: str
    state: str

    def __repr__(self) -> str:
        return f"PkceParameters(state={self.state!r})"


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def compute_code_challenge(code_verifier: str) -> str:
    """Return the S256 challenge: base64url(SHA-256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_pkce() -> PkceParameters:
    """Generate a fresh verifier, challenge and state.

    The verifier carries 32 bytes of entropy, which base64url-encodes to the
    43-character minimum length allowed by RFC 7636. The state is 16 random
    bytes rendered as hex.

    Returns:
        A new :class:`PkceParameters`.
    """
    code_verifier = _b64url(secrets.token_bytes(_VERIFIER_BYTES))
    return PkceParameters(
        code_verifier=code_verifier,
        code_challenge=compute_code_challenge(code_verifier),
        state=secrets.token_hex(_STATE_BYTES),
    )
