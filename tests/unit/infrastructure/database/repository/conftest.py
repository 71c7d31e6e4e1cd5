"""Fixtures for collection manager unit tests."""

from typing import Any, cast

import pytest
from pytest_mock import MockerFixture, MockType

from src.infrastructure.database.repository import CollectionManager
from src.infrastructure.messaging.notifier import ChangeNotifier, topic_builder
from tests.unit.infrastructure.database.models import (
    Gadget,
    GadgetCollection,
    GadgetRequest,
    GadgetResponse,
    to_gadget_response,
)


@pytest.fixture
def mock_notifier(mocker: MockerFixture) -> MockType:
    """Mock ChangeNotifier recording published events."""
    notifier = mocker.Mock(spec=ChangeNotifier)
    notifier.publish.return_value = True
    return cast("MockType", notifier)


@pytest.fixture
def gadgets(
    mock_session_factory: MockType, mock_notifier: MockType
) -> GadgetCollection:
    """Collection manager for gadgets over a mocked session factory."""
    return CollectionManager(
        mock_session_factory,
        Gadget,
        resource=to_gadget_response,
        request_model=GadgetRequest,
        created=topic_builder("gadget", "create"),
        updated=topic_builder("gadget", "update"),
        deleted=topic_builder("gadget", "delete"),
        notifier=mock_notifier,
    )


@pytest.fixture
def make_result(mocker: MockerFixture) -> Any:
    """Build a mock query result.

    ``make_result(rows=[...])`` answers ``scalars().all()`` and
    ``scalars().first()``; ``make_result(one=x)`` answers
    ``scalar_one_or_none()`` and ``scalar_one()``.
    """

    def _make(rows: list[Any] | None = None, one: Any = None) -> MockType:
        result = mocker.Mock()
        rows = rows or []
        result.scalars.return_value.all.return_value = rows
        result.scalars.return_value.first.return_value = rows[0] if rows else None
        result.scalar_one_or_none.return_value = one
        result.scalar_one.return_value = one
        return cast("MockType", result)

    return _make
