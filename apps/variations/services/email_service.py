import logging
from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string

from apps.core.errors import InputValidationError, RemoteError

logger = logging.getLogger(__name__)


class VariationEmailService:
    """
    Outbound variation notification to the client

    Fire-and-forget: a successful call only means the message was handed to
    the email backend, not that it was delivered.
    """

    @staticmethod
    def validate_recipient(variation: dict) -> str:
        recipient = (variation.get("client_email") or "").strip()
        if not recipient:
            raise InputValidationError("No client email found for this variation", "MISSING_CLIENT_EMAIL")
        return recipient

    @staticmethod
    def send_variation_email(variation: dict, sender_name: str = "") -> str:
        """
        Send the variation summary to its client email

        Args:
            variation: normalized variation record
            sender_name: display name of the sending user

        Returns:
            the recipient address

        Raises:
            InputValidationError: no client email (checked before any I/O)
            RemoteError: the email backend rejected the message (EMAIL_SEND_ERROR)
        """
        recipient = VariationEmailService.validate_recipient(variation)

        context = {"variation": variation, "sender_name": sender_name or "Site Ledger"}
        subject = f"Variation {variation.get('variation_number')}: {variation.get('title')}"

        try:
            send_mail(
                subject=subject,
                message=render_to_string("variations/variation_email.txt", context),
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[recipient],
                html_message=render_to_string("variations/variation_email.html", context),
                fail_silently=False,
            )
        except Exception as e:
            logger.error(f"Failed to send variation email for {variation.get('id')} to {recipient}: {str(e)}")
            raise RemoteError("Failed to send variation email", "EMAIL_SEND_ERROR", details={"reason": str(e)}) from e

        logger.info(f"Sent variation email for {variation.get('variation_number')} to {recipient}")
        return recipient
