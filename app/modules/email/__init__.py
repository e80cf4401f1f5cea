"""
Outgoing email for billing documents.
"""

from .service import email_service
from .tasks import send_document_email_task

__all__ = [
    'email_service',
    'send_document_email_task'
]
