"""
Date-derived document status.

pending <-> overdue follows the due date; paid is only ever set explicitly and
is sticky until it is explicitly reverted.
"""
from datetime import date
from typing import Optional, Tuple

from app.core.exceptions import ValidationFailed
from app.modules.documents.schemas import DocumentStatus


def derive_status(due_date: Optional[date], today: Optional[date] = None) -> DocumentStatus:
    """Past due date is overdue; today, future or no due date is pending"""
    today = today or date.today()
    if due_date is not None and due_date < today:
        return DocumentStatus.OVERDUE
    return DocumentStatus.PENDING


def effective_status(stored, due_date: Optional[date], today: Optional[date] = None) -> DocumentStatus:
    stored = DocumentStatus(stored)
    if stored == DocumentStatus.PAID:
        return stored
    return derive_status(due_date, today)


def resolve_status(
    current,
    requested: Optional[DocumentStatus],
    due_date: Optional[date],
    due_date_changed: bool,
    today: Optional[date] = None,
) -> Tuple[DocumentStatus, bool]:
    """
    Decide the status an update writes.

    Returns (new_status, reverted_from_paid). Raises ValidationFailed for a
    requested transition that is not legal.
    """
    current = DocumentStatus(current)

    if requested is None:
        if due_date_changed and current != DocumentStatus.PAID:
            return derive_status(due_date, today), False
        return current, False

    requested = DocumentStatus(requested)
    if requested == DocumentStatus.PAID:
        return requested, False

    if current == DocumentStatus.PAID:
        return requested, True

    derived = derive_status(due_date, today)
    if requested != derived:
        raise ValidationFailed(
            f"Status '{requested.value}' does not match the due date; expected '{derived.value}'"
        )
    return requested, False
