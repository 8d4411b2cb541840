"""Respondent email normalization for deduplication and safe logging.

The verified email address is the only key used to detect repeat
submissions, so it is normalized once, immediately after verification, and
every lookup and stored response uses the normalized form.
"""


class RespondentKey:
    """
    Normalization and masking of respondent email addresses.

    Emails are trimmed and lower-cased so a respondent cannot bypass the
    one-response limit by resubmitting with different casing or padding.

    Usage example:
        from app.services.respondent_key import RespondentKey

        email = RespondentKey.normalize_email(identity.email)

        # For logging:
        logger.info(f"Accepted response from {RespondentKey.mask_for_logging(email)}")
    """

    @staticmethod
    def normalize_email(email: str) -> str:
        """
        Normalize an email address for comparison and storage.

        Args:
            email: Email address, potentially padded or mixed case

        Returns:
            Trimmed, lower-cased email address

        Example:
            >>> RespondentKey.normalize_email("  Alice@Example.COM ")
            'alice@example.com'
        """
        return str(email or "").strip().lower()

    @staticmethod
    def display_name(email: str, name: str = "") -> str:
        """
        Name to greet a respondent with, falling back to the email local part.

        Example:
            >>> RespondentKey.display_name("alice@example.com")
            'alice'
        """
        if name and name.strip():
            return name.strip()
        return RespondentKey.normalize_email(email).split("@")[0]

    @staticmethod
    def mask_for_logging(email: str) -> str:
        """
        Mask an email for logs, keeping the first character and the domain.

        Full addresses should not appear in logs; the masked form is enough
        to correlate entries while debugging.

        Example:
            >>> RespondentKey.mask_for_logging("alice@example.com")
            'a***@example.com'
        """
        normalized = RespondentKey.normalize_email(email)
        local, sep, domain = normalized.partition("@")
        if not sep:
            return "***"
        return f"{local[:1]}***@{domain}"
