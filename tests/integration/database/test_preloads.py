"""Integration tests for nested relationship preloading."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.exceptions import PersistenceError
from src.infrastructure.database.repository import CollectionManager
from src.infrastructure.messaging.notifier import topic_builder
from tests.unit.infrastructure.database.models import (
    Gadget,
    GadgetCollection,
    GadgetRequest,
    Part,
    Vendor,
    to_gadget_response,
)


@pytest.fixture
def gadgets(session_factory: async_sessionmaker[AsyncSession]) -> GadgetCollection:
    """Gadget collection without default preloads or notifications."""
    return CollectionManager(
        session_factory,
        Gadget,
        resource=to_gadget_response,
        request_model=GadgetRequest,
        created=topic_builder("gadget", "create"),
        updated=topic_builder("gadget", "update"),
        deleted=topic_builder("gadget", "delete"),
    )


@pytest.fixture
async def gadget_id(session_factory: async_sessionmaker[AsyncSession]) -> uuid.UUID:
    """Identity of a stored gadget whose part has a vendor."""
    vendor = Vendor(id=uuid.uuid4(), name="Acme")
    part = Part(id=uuid.uuid4(), label="Sprocket", vendor=vendor)
    gadget = Gadget(id=uuid.uuid4(), name="Widget", quantity=3, part=part)
    async with session_factory() as session, session.begin():
        session.add(gadget)
    return gadget.id


@pytest.mark.integration
class TestNestedPreloads:
    """Test dotted preload paths."""

    async def test_dotted_path_loads_chain(
        self, gadgets: GadgetCollection, gadget_id: uuid.UUID
    ) -> None:
        """Every relationship along the path is attached."""
        gadget = await gadgets.get_by_id(gadget_id, "part.vendor")

        assert gadget.part is not None
        assert gadget.part.label == "Sprocket"
        assert gadget.part.vendor is not None
        assert gadget.part.vendor.name == "Acme"

    async def test_capitalized_name_normalized(
        self, gadgets: GadgetCollection, gadget_id: uuid.UUID
    ) -> None:
        """The first character of a preload name is lower-cased."""
        gadget = await gadgets.get_by_id(gadget_id, "Part")

        assert gadget.part is not None
        assert gadget.part.label == "Sprocket"

    async def test_default_preloads_apply(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gadget_id: uuid.UUID,
    ) -> None:
        """Collection defaults are attached without per-call names."""
        collection: GadgetCollection = CollectionManager(
            session_factory,
            Gadget,
            resource=to_gadget_response,
            request_model=GadgetRequest,
            created=topic_builder("gadget", "create"),
            updated=topic_builder("gadget", "update"),
            deleted=topic_builder("gadget", "delete"),
            preloads=("part",),
        )

        records = await collection.list()

        assert records[0].part is not None

    async def test_unknown_relation_rejected(
        self, gadgets: GadgetCollection, gadget_id: uuid.UUID
    ) -> None:
        """Paths through non-relationships fail before querying."""
        with pytest.raises(PersistenceError, match="unknown relation 'part.label'"):
            await gadgets.get_by_id(gadget_id, "part.label")
