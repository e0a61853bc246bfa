"""ORM guards that refuse UPDATE and DELETE on audit rows"""
from sqlalchemy import event


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to modify or delete an audit row."""


def _refuse_update(mapper, connection, target):
    raise ImmutableRecordError(f"{type(target).__name__} rows are append-only and cannot be updated")


def _refuse_delete(mapper, connection, target):
    raise ImmutableRecordError(f"{type(target).__name__} rows are append-only and cannot be deleted")


def make_append_only(model) -> None:
    event.listen(model, "before_update", _refuse_update)
    event.listen(model, "before_delete", _refuse_delete)
