"""Fixtures for API unit tests."""

from typing import cast

import pytest
from fastapi import Request
from pytest_mock import MockerFixture, MockType


@pytest.fixture
def mock_request(mocker: MockerFixture) -> MockType:
    """Mock request for calling exception handlers directly.

    Args:
        mocker: Pytest mocker fixture.

    Returns:
        MockType: Request with method and path set.
    """
    request = mocker.Mock(spec=Request)
    request.method = "POST"
    request.url = mocker.Mock()
    request.url.path = "/feedback"
    return cast("MockType", request)
