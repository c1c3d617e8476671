"""
Shared pytest fixtures for contract tests.
"""
import pytest

from switchboard.tests.contracts._switchboard_harness import HOST, start_server


@pytest.fixture
def files_dir(tmp_path):
    """Directory behind /files/ (not created until the first POST)."""
    return tmp_path / "files"


@pytest.fixture
def server(files_dir):
    """Running HTTPServer on a free port.

    Returns:
        tuple: (server, port)
    """
    http_server, port = start_server(files_dir, idle_timeout=5.0)
    yield http_server, port
    http_server.stop()


@pytest.fixture
def port(server):
    return server[1]


@pytest.fixture
def base_url(port):
    return f"http://{HOST}:{port}"
