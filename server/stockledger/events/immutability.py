"""Append-only enforcement for event store rows.

Listeners fire before SQL reaches the database, so a rejected UPDATE or DELETE
aborts the flush and nothing is written.
"""
import logging

from sqlalchemy import event, inspect

from stockledger.errors import ImmutableEventError
from stockledger.models import ItemEvent, OrderEvent


logger = logging.getLogger(__name__)

PROTECTED_MODELS = (ItemEvent, OrderEvent)


def _changed_columns(target) -> list[str]:
    state = inspect(target)
    return [attr.key for attr in state.mapper.column_attrs if state.attrs[attr.key].history.has_changes()]


def _reject_update(mapper, connection, target):
    changed = _changed_columns(target)
    if not changed:
        return
    logger.error(
        "Blocked update of %s id=%s fields=%s",
        mapper.class_.__name__,
        target.id,
        changed,
    )
    raise ImmutableEventError(f"{mapper.class_.__name__} {target.id} is immutable; attempted to change {', '.join(changed)}.")


def _reject_delete(mapper, connection, target):
    logger.error("Blocked delete of %s id=%s", mapper.class_.__name__, target.id)
    raise ImmutableEventError(f"{mapper.class_.__name__} {target.id} cannot be deleted.")


def register_immutability_listeners() -> None:
    for model in PROTECTED_MODELS:
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)
