"""Verification of respondent identity tokens.

Respondents prove who they are with a Google ID token obtained in the
browser. The token's signature, audience, issuer and expiry are checked
locally by google-auth against Google's published signing certificates on
every submission attempt; nothing is cached or stored between attempts
beyond those certificates.

Verification fails closed: if the certificates cannot be fetched within
``identity_timeout_seconds`` the attempt is refused with
``IdentityProviderUnavailableError`` rather than accepted unverified.
"""

import asyncio
from dataclasses import dataclass
from functools import partial
from typing import Optional

from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from app.config import get_settings
from app.services.respondent_key import RespondentKey
from app.logging_config import get_logger

logger = get_logger(__name__)


class IdentityVerificationError(Exception):
    """Raised when a token is rejected or does not identify a verified email."""
    pass


class IdentityProviderUnavailableError(Exception):
    """Raised when the identity provider cannot be reached or fails."""
    pass


@dataclass(frozen=True)
class VerifiedIdentity:
    """A respondent identity established from a verified token.

    Attributes:
        email: Normalized (trimmed, lower-cased) email address
        name: Display name reported by the provider ("" when absent)
        subject: Provider's stable account identifier
    """
    email: str
    name: str
    subject: str


class IdentityVerifier:
    """Verifies Google ID tokens with google-auth."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.client_id = client_id if client_id is not None else settings.google_client_id
        self.timeout = timeout or settings.identity_timeout_seconds
        self._request = google_requests.Request()

    async def verify(self, token: str) -> VerifiedIdentity:
        """Verify an identity token.

        Args:
            token: Opaque Google ID token from the respondent

        Returns:
            VerifiedIdentity for the token's owner

        Raises:
            IdentityVerificationError: Token missing, invalid, expired,
                issued for another client or issuer, or without a verified
                email
            IdentityProviderUnavailableError: Signing certificates could not
                be fetched
        """
        if not token:
            raise IdentityVerificationError("Identity token is missing")

        if not self.client_id:
            logger.error("Identity verification failed: Google client ID is not configured")
            raise IdentityVerificationError("Identity verification is not configured")

        request = partial(self._request, timeout=self.timeout)
        try:
            claims = await asyncio.to_thread(
                id_token.verify_oauth2_token, token, request, self.client_id
            )
        except google_exceptions.TransportError as exc:
            logger.error(f"Identity provider request failed: {exc}")
            raise IdentityProviderUnavailableError(
                f"Identity provider unreachable: {exc}"
            ) from exc
        except (ValueError, google_exceptions.GoogleAuthError) as exc:
            logger.info(f"Identity token rejected: {exc}")
            raise IdentityVerificationError("Identity token is invalid or expired") from exc

        return self._identity_from_claims(claims)

    def _identity_from_claims(self, claims: dict) -> VerifiedIdentity:
        if not isinstance(claims, dict):
            raise IdentityVerificationError("Identity token claims are malformed")

        email = RespondentKey.normalize_email(claims.get("email") or "")
        subject = str(claims.get("sub") or "")
        if not email or not subject:
            raise IdentityVerificationError("Identity token has no email address")

        if str(claims.get("email_verified", "")).lower() != "true":
            logger.info(
                f"Unverified email in identity token: {RespondentKey.mask_for_logging(email)}"
            )
            raise IdentityVerificationError("Email address is not verified")

        name = claims.get("name")
        return VerifiedIdentity(
            email=email,
            name=name if isinstance(name, str) else "",
            subject=subject,
        )


# Global singleton instance
_verifier_instance: Optional[IdentityVerifier] = None


def get_identity_verifier() -> IdentityVerifier:
    """Get global IdentityVerifier instance (usable as a FastAPI dependency)."""
    global _verifier_instance
    if _verifier_instance is None:
        _verifier_instance = IdentityVerifier()
    return _verifier_instance
