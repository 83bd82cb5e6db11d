"""Shared test fixtures for Claude Panel."""

import os
import sys
from pathlib import Path

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(scope="session")
def qapp():
    """Create a QCoreApplication for tests that need the Qt event loop."""
    os.environ["QT_QPA_PLATFORM"] = "offscreen"
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(sys.argv or ["test"])
    yield app


@pytest.fixture
def fixtures_dir() -> Path:
    """Path to the test fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def isolated_settings(tmp_path):
    """Point QSettings at a temp directory."""
    from PySide6.QtCore import QSettings
    QSettings.setDefaultFormat(QSettings.IniFormat)
    QSettings.setPath(QSettings.IniFormat, QSettings.UserScope, str(tmp_path / "config"))
    return tmp_path / "config"


@pytest.fixture
def stream_session_path(fixtures_dir) -> Path:
    return fixtures_dir / "stream_session.jsonl"


@pytest.fixture
def fake_cli(fixtures_dir):
    """Build a CLI command that runs one of the fake claude scripts."""
    def _make(name: str, *args: str) -> list[str]:
        return [sys.executable, str(fixtures_dir / "fake_cli" / name), *args]
    return _make
