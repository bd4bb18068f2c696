import os
import sys
import pytest
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import config
config.LOG_DIR = str(Path("test_logs").absolute())

from app.services.auth import is_authorized


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(config, "API_KEY", "123456789")
    return "123456789"


def test_matching_key(api_key):
    assert is_authorized(api_key)


@pytest.mark.parametrize("provided", [None, "", "12345678", "1234567890", "123456789 ", "ABC"])
def test_mismatching_key(api_key, provided):
    assert not is_authorized(provided)


def test_non_ascii_key_is_rejected(api_key):
    assert not is_authorized("12345678é")


def test_unconfigured_secret_rejects_everything(monkeypatch):
    monkeypatch.setattr(config, "API_KEY", "")

    assert not is_authorized("")
    assert not is_authorized("anything")
