"""Preload name composition and relationship loader options.

A collection carries a default set of relationship names that every read and
reload attaches; a call may add more. Names are relationship attribute paths,
with dots walking nested relationships (``"media"``, ``"media.owner"``).
"""

from collections.abc import Iterable
from itertools import chain
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.interfaces import LoaderOption

from src.core.exceptions import PersistenceError


def normalize_preload(name: str) -> str:
    """Lower-case the first character of a preload name.

    Only the first character is touched: ``"Media"`` becomes ``"media"`` while
    ``"MediaOwner"`` becomes ``"mediaOwner"``.
    """
    return name[:1].lower() + name[1:]


def merge_preloads(
    defaults: Iterable[str] | None, overrides: Iterable[str] | None
) -> list[str]:
    """Merge default and per-call preload names.

    Defaults come first, then overrides, each in their given order. Empty
    names are skipped and duplicates (after normalization) are dropped.

    Args:
        defaults: The collection's default preload names.
        overrides: Additional names supplied for one call.

    Returns:
        list[str]: Deduplicated, normalized, order-preserving names.
    """
    seen: set[str] = set()
    merged: list[str] = []
    for name in chain(defaults or (), overrides or ()):
        if not name:
            continue
        normalized = normalize_preload(name)
        if normalized in seen:
            continue
        seen.add(normalized)
        merged.append(normalized)
    return merged


def preload_options(model_class: type, names: Iterable[str]) -> list[LoaderOption]:
    """Build one ``selectinload`` chain per preload name.

    Args:
        model_class: The mapped class the names are relative to.
        names: Already merged preload names.

    Returns:
        list: Loader options to pass to ``Select.options``.

    Raises:
        PersistenceError: If a path segment is not a relationship.
    """
    options: list[LoaderOption] = []
    for name in names:
        current = model_class
        option: Any = None
        for segment in name.split("."):
            relationships = inspect(current).relationships
            if segment not in relationships:
                msg = f"unknown relation '{name}' on {model_class.__name__}"
                raise PersistenceError(
                    msg,
                    context={"entity": model_class.__name__, "preload": name},
                )
            attribute = getattr(current, segment)
            option = (
                selectinload(attribute)
                if option is None
                else option.selectinload(attribute)
            )
            current = relationships[segment].mapper.class_
        if option is not None:
            options.append(option)
    return options
