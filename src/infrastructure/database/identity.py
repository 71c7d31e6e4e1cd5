"""Identity access for arbitrary record types.

Records expose their identity through the ``Identifiable`` protocol instead of
being inspected field by field. The module-level helpers add the checks the
collection manager relies on: the record must implement the protocol and its
identity must be a ``uuid.UUID``.
"""

import uuid
from typing import Protocol, runtime_checkable

from src.core.exceptions import IdentityError

NIL_IDENTITY = uuid.UUID(int=0)


@runtime_checkable
class Identifiable(Protocol):
    """A record with a single UUID identity."""

    def get_identity(self) -> uuid.UUID | None:
        """Return the identity, or ``None`` when it has not been assigned."""
        ...

    def set_identity(self, identity: uuid.UUID) -> None:
        """Assign the identity."""
        ...


def is_nil(identity: uuid.UUID | None) -> bool:
    """Whether ``identity`` means "not yet persisted"."""
    return identity is None or identity == NIL_IDENTITY


def get_identity(record: object) -> uuid.UUID:
    """Read the identity of ``record``.

    Args:
        record: Any object implementing ``Identifiable``.

    Returns:
        uuid.UUID: The identity, ``NIL_IDENTITY`` when unset.

    Raises:
        IdentityError: If the record has no identity accessor or the identity
            is not a UUID.
    """
    record_type = type(record).__name__
    if not isinstance(record, Identifiable):
        msg = f"{record_type} does not expose an identity"
        raise IdentityError(msg, context={"entity": record_type})

    identity = record.get_identity()
    if identity is None:
        return NIL_IDENTITY
    if not isinstance(identity, uuid.UUID):
        msg = f"{record_type} identity is not a UUID"
        raise IdentityError(
            msg,
            context={"entity": record_type, "identity_type": type(identity).__name__},
        )
    return identity


def set_identity(record: object, identity: uuid.UUID) -> None:
    """Assign ``identity`` to ``record``.

    Raises:
        IdentityError: If the record has no identity accessor, the value is not
            a UUID, or the record refuses the assignment.
    """
    record_type = type(record).__name__
    if not isinstance(record, Identifiable):
        msg = f"{record_type} does not expose an identity"
        raise IdentityError(msg, context={"entity": record_type})
    if not isinstance(identity, uuid.UUID):
        msg = f"cannot set {record_type} identity to a non-UUID value"
        raise IdentityError(
            msg,
            context={"entity": record_type, "identity_type": type(identity).__name__},
        )

    try:
        record.set_identity(identity)
    except (AttributeError, TypeError, ValueError) as e:
        msg = f"{record_type} identity cannot be set"
        raise IdentityError(msg, context={"entity": record_type}, cause=e) from e
