"""Shared pytest fixtures."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

from pushin.local_db import LocalDatabase
from pushin.state_machine import AppBlockTarget


@pytest.fixture(autouse=True)
def pushin_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ~ at a temp dir so nothing touches the real ~/.pushin."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("USER", raising=False)
    return home / ".pushin"


@pytest.fixture
def t0() -> datetime:
    """A fixed local noon, far from any midnight."""
    return datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture
def targets() -> list[AppBlockTarget]:
    return [
        AppBlockTarget(id="com.instagram.android", name="Instagram"),
        AppBlockTarget(id="com.zhiliaoapp.musically", name="TikTok"),
        AppBlockTarget(id="reddit.com", name="Reddit", type="website"),
    ]


@pytest.fixture
def db(tmp_path: Path) -> LocalDatabase:
    return LocalDatabase(tmp_path / "usage.db")


@pytest.fixture
def config(targets: list[AppBlockTarget]) -> SimpleNamespace:
    """Minimal stand-in for PushinConfig with what the controller reads."""
    return SimpleNamespace(
        targets=targets,
        grace_period_seconds=0,
        sync_interval_seconds=3,
        workout_mode="normal",
    )
