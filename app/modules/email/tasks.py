"""
Celery tasks for outgoing email.
"""
import base64
import logging
from typing import Dict, Any, Optional
from app.core.celery import celery_app
from app.modules.email.service import email_service

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def send_document_email_task(
    self,
    to_email: str,
    subject: str,
    template_name: str,
    context: Dict[str, Any],
    attachment_filename: Optional[str] = None,
    attachment_b64: Optional[str] = None,
):
    """
    Send a templated email with an optional PDF attachment.

    The attachment travels base64-encoded so the task payload stays JSON.
    """
    attachments = None
    if attachment_filename and attachment_b64:
        attachments = [(attachment_filename, base64.b64decode(attachment_b64), "pdf")]

    try:
        success = email_service.send_template_email(
            to_emails=[to_email],
            subject=subject,
            template_name=template_name,
            context=context,
            attachments=attachments
        )

        if not success:
            raise Exception("Failed to send template email")

        logger.info(f"Email '{template_name}' sent successfully to {to_email}")
        return {"status": "success", "template": template_name, "recipient": to_email}

    except Exception as exc:
        logger.error(f"Email '{template_name}' to {to_email} failed: {str(exc)}")

        # Retry with exponential backoff
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        return {"status": "failed", "error": str(exc), "template": template_name, "recipient": to_email}
