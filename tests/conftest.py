"""Pytest configuration and fixtures."""

import shutil
import tempfile
from pathlib import Path

import pytest
from rich.console import Console

from gitflash.config import Config
from gitflash.models import OperationResult
from gitflash.tools.server import OperationServer
from gitflash.transport import Transport

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def test_project(temp_dir):
    """Create a test project structure."""
    project = temp_dir / "proj"
    project.mkdir()

    (project / "src").mkdir()
    (project / "src" / "main.py").write_text("def hello():\n    return 'world'\n")
    (project / "src" / "utils.py").write_text("def add(a, b):\n    return a + b\n")

    (project / "tests").mkdir()
    (project / "tests" / "test_main.py").write_text(
        "def test_hello():\n    from src.main import hello\n    assert hello() == 'world'\n"
    )

    (project / "README.md").write_text("# Test Project\n")

    yield project


@pytest.fixture
def server(test_project):
    """Operation server confined to the test project."""
    return OperationServer(test_project, timeout=10)


@pytest.fixture
def quiet_console():
    """Console that swallows the session trace."""
    return Console(quiet=True)


@pytest.fixture
def mock_config(temp_dir):
    """Create a mock configuration."""
    return Config(
        anthropic_api_key="test_key",
        home=temp_dir / "home",
    )


class RecordingTransport(Transport):
    """Forwards to a server (or returns canned results) and records each request."""

    def __init__(self, server=None, results=None):
        super().__init__()
        self.server = server
        self.results = list(results or [])
        self.requests = []

    def _call(self, request):
        self.requests.append(request)
        if self.results:
            return self.results.pop(0)
        if self.server is not None:
            return self.server.execute(request)
        return OperationResult.success("ok")


class FakeLLM:
    """Completion service returning scripted responses in order."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def complete(self, messages, tools=None, **kwargs):
        self.calls.append({"messages": list(messages), "tools": tools, **kwargs})
        if not self.responses:
            raise AssertionError("FakeLLM ran out of scripted responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def tool_call(name, arguments=None, call_id=None):
    """Build a scripted tool-call response."""
    return {
        "role": "assistant",
        "content": "",
        "tool_calls": [{"id": call_id or f"call_{name}", "name": name, "arguments": arguments or {}}],
    }


def final(text):
    """Build a scripted final-answer response."""
    return {"role": "assistant", "content": text}
