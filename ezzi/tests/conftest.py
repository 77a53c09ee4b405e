"""Shared fixtures for the Ezzi test suite."""

import pytest
from PyQt6.QtCore import QCoreApplication

from ezzi.src.utils.environment import API_BASE_URL_ENV, MOCK_ENV, SELF_HOSTED_ENV


@pytest.fixture(scope="session", autouse=True)
def qt_core_app():
    """Signals and QObjects need an application instance; no event loop is run."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Environment toggles must not leak in from the developer's shell."""
    for name in (MOCK_ENV, SELF_HOSTED_ENV, API_BASE_URL_ENV):
        monkeypatch.delenv(name, raising=False)
