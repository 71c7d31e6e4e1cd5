"""Mocked engine, session and session factory for database unit tests."""

from typing import cast

import pytest
from pytest_mock import MockerFixture, MockType
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession


def _async_context(mocker: MockerFixture, target: MockType) -> None:
    """Make ``async with target`` yield ``target`` itself."""
    target.__aenter__ = mocker.AsyncMock(return_value=target)
    target.__aexit__ = mocker.AsyncMock(return_value=None)


@pytest.fixture
def mock_async_engine(mocker: MockerFixture) -> MockType:
    """Engine whose ``connect()`` answers ``SELECT 1``."""
    connection = mocker.AsyncMock()
    _async_context(mocker, connection)
    connection.execute.return_value = mocker.Mock(scalar=mocker.Mock(return_value=1))

    engine = mocker.Mock(spec=AsyncEngine)
    engine.dispose = mocker.AsyncMock()
    engine.connect = mocker.Mock(return_value=connection)
    return cast("MockType", engine)


@pytest.fixture
def mock_async_session(mocker: MockerFixture) -> MockType:
    """Session with awaitable unit-of-work methods."""
    session = mocker.Mock(spec=AsyncSession)
    for name in ("commit", "rollback", "close", "execute", "flush", "merge", "delete"):
        setattr(session, name, mocker.AsyncMock())
    session.add = mocker.Mock()
    session.add_all = mocker.Mock()
    _async_context(mocker, session)
    return cast("MockType", session)


@pytest.fixture
def mock_session_factory(
    mocker: MockerFixture, mock_async_session: MockType
) -> MockType:
    """``async_sessionmaker`` stand-in that always opens ``mock_async_session``."""
    return cast("MockType", mocker.Mock(return_value=mock_async_session))
