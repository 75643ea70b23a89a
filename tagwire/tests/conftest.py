"""Unit tests configuration file."""

import pytest

from tagwire.generator import parse_files
from tagwire.generator.python import render


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


@pytest.fixture
def generate():
    """Render schema text to Python and exec it, returning the resulting namespace."""

    def _generate(*texts: str) -> dict:
        code = render(*parse_files(list(texts)), runtime_import="tagwire.proto")
        namespace: dict = {"__name__": "tagwire_generated"}
        exec(code, namespace)
        return namespace

    return _generate
