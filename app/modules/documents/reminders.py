"""
Reminder repetition column codec.

Stored values are a JSON array of repetitions. Rows written before the array
format hold a single bare value (or a JSON-encoded string); both are still read.
"""
from typing import Iterable, List, Optional
import json
import logging

from app.core.exceptions import ValidationFailed
from app.modules.documents.schemas import ReminderRepetition

logger = logging.getLogger(__name__)


def _dedupe(values: Iterable[ReminderRepetition]) -> List[ReminderRepetition]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def parse_reminder_repetition(raw: Optional[str]) -> Optional[List[ReminderRepetition]]:
    """Read boundary; unknown values are skipped with a warning"""
    if raw is None or not str(raw).strip():
        return None

    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        decoded = raw

    if isinstance(decoded, str):
        decoded = [decoded]
    if not isinstance(decoded, list):
        logger.warning(f"Ignoring unreadable reminder repetition value: {raw!r}")
        return None

    values = []
    for entry in decoded:
        try:
            values.append(ReminderRepetition(str(entry).strip().lower()))
        except ValueError:
            logger.warning(f"Ignoring unknown reminder repetition: {entry!r}")
    return _dedupe(values) or None


def serialize_reminder_repetition(values) -> Optional[str]:
    """Write boundary; always a JSON array, or None when empty"""
    if not values:
        return None
    if isinstance(values, str):
        values = [values]
    try:
        normalized = _dedupe(ReminderRepetition(v) for v in values)
    except ValueError as e:
        raise ValidationFailed(f"Invalid reminder repetition: {e}") from e
    return json.dumps([v.value for v in normalized])
