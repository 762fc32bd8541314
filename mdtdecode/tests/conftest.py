"""Unit tests configuration file."""

import os

import pytest

FIXTURES = os.path.join(os.path.dirname(os.path.realpath(__file__)), "fixtures")


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


@pytest.fixture
def fixtures_dir():
    return FIXTURES


@pytest.fixture
def include_dirs():
    return (os.path.join(FIXTURES, "includes_a"), os.path.join(FIXTURES, "includes_b"))
