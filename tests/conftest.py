from unittest.mock import Mock

import pytest
import structlog

from tests.helpers import start_in_background
from webhook_server import Deadline
from webhook_server.engines import ENGINE_CLASSES


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any structlog configuration a test applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def mock_logger():
    """Logger stand-in recording every event."""
    return Mock()


@pytest.fixture(params=sorted(ENGINE_CLASSES))
def engine(request):
    """Name of each available engine."""
    return request.param


@pytest.fixture
def running_server(engine, mock_logger):
    """A server of each engine bound to an ephemeral local port."""
    server = ENGINE_CLASSES[engine](logger=mock_logger)
    thread = start_in_background(server)
    yield server
    server.stop(Deadline(1))
    thread.join(2)


@pytest.fixture
def base_url(running_server):
    host, port = running_server.address
    return f"http://{host}:{port}"
