"""Sparse field extraction for filter records and partial updates.

A filter record is an ordinary (usually transient) model instance; only its
non-zero column values take part in a query or a patch. Zero values are
``None``, ``""``, ``0``, ``False``, the nil UUID and empty containers, so a
record with nothing set matches every row and patches nothing.
"""

import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.sql.elements import ColumnElement

from src.infrastructure.database.identity import NIL_IDENTITY


def is_zero(value: object) -> bool:
    """Whether ``value`` counts as unset for sparse semantics."""
    if value is None:
        return True
    if isinstance(value, bool):
        return not value
    if isinstance(value, uuid.UUID):
        return value == NIL_IDENTITY
    if isinstance(value, int | float | Decimal):
        return value == 0
    if isinstance(value, str | bytes | list | tuple | dict | set):
        return len(value) == 0
    return False


def non_zero_fields(record: object) -> dict[str, Any]:
    """Return the column values of ``record`` that are set.

    Values are read from the instance state, so unloaded attributes are
    treated as unset and never trigger a lazy load.

    Args:
        record: A mapped model instance.

    Returns:
        dict[str, Any]: Attribute name to value, in mapper column order.
    """
    state = inspect(record)
    loaded = state.dict
    fields: dict[str, Any] = {}
    for attr in state.mapper.column_attrs:
        value = loaded.get(attr.key)
        if not is_zero(value):
            fields[attr.key] = value
    return fields


def filter_conditions(
    model_class: type, record: object | None
) -> list[ColumnElement[bool]]:
    """Build equality conditions for every non-zero field of ``record``."""
    if record is None:
        return []
    return [
        getattr(model_class, key) == value
        for key, value in non_zero_fields(record).items()
    ]
