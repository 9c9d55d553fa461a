"""Shared test fixtures."""

from datetime import date

import pytest


@pytest.fixture
def run_config():
    """January 2024 run for acme/widgets."""
    from prharvest.models import RunConfig

    return RunConfig(
        owner="acme",
        name="widgets",
        from_date=date(2024, 1, 1),
        until_date=date(2024, 1, 31),
        credential="fake-token",
    )


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Point per-repository data files at a temp directory."""
    monkeypatch.setenv("PRHARVEST_DATA_DIR", str(tmp_path))
    return tmp_path
