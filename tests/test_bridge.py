"""Tests for the platform bridges."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests

from pushin.bridge import HttpBridge, OverlayBridge, get_bridge


def response(ok: bool = True, payload=None) -> MagicMock:
    resp = MagicMock()
    resp.ok = ok
    resp.json.return_value = payload
    return resp


@pytest.fixture
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


class TestOverlayBridge:
    def test_never_reports_enforcement(self) -> None:
        bridge = OverlayBridge(quiet=True)
        assert bridge.available is False
        assert bridge.apply_blocking(["a", "b"]) is False
        assert bridge.blocked == ["a", "b"]
        assert bridge.remove_blocking(60) is False
        assert bridge.blocked == []

    def test_prints_only_on_change(self, capsys) -> None:
        bridge = OverlayBridge()
        bridge.apply_blocking(["a"])
        bridge.apply_blocking(["a"])
        assert capsys.readouterr().out.count("Overlay") == 1

    def test_no_emergency_status(self) -> None:
        assert OverlayBridge().query_emergency_status() is None


class TestHttpBridge:
    def test_apply_blocking_posts_targets(self, session: MagicMock) -> None:
        session.post.return_value = response(ok=True)
        bridge = HttpBridge("http://127.0.0.1:8765/", session=session)

        assert bridge.apply_blocking(["com.instagram.android"]) is True
        session.post.assert_called_once_with(
            "http://127.0.0.1:8765/block",
            json={"targets": ["com.instagram.android"]},
            timeout=HttpBridge.TIMEOUT_SECONDS,
        )

    def test_remove_blocking_sends_hint(self, session: MagicMock) -> None:
        session.post.return_value = response(ok=True)
        bridge = HttpBridge("http://helper", session=session)
        assert bridge.remove_blocking(300) is True
        assert session.post.call_args.kwargs["json"] == {"duration_seconds": 300}

    def test_connection_error_fails_open(self, session: MagicMock, capsys) -> None:
        session.post.side_effect = requests.ConnectionError("refused")
        bridge = HttpBridge("http://helper", session=session)

        assert bridge.apply_blocking(["x"]) is False
        assert bridge.available is False
        assert "falling back to overlay" in capsys.readouterr().out

    def test_recovers_after_failure(self, session: MagicMock, capsys) -> None:
        session.post.side_effect = [requests.Timeout("slow"), response(ok=True)]
        bridge = HttpBridge("http://helper", session=session)
        bridge.apply_blocking(["x"])
        assert bridge.apply_blocking(["x"]) is True
        assert bridge.available is True
        assert "reachable again" in capsys.readouterr().out

    def test_error_status_is_failure(self, session: MagicMock) -> None:
        session.post.return_value = response(ok=False)
        bridge = HttpBridge("http://helper", session=session)
        assert bridge.apply_blocking(["x"]) is False
        assert bridge.available is False

    def test_query_emergency_status(self, session: MagicMock) -> None:
        session.get.return_value = response(payload={
            "active": True,
            "used_today": 2,
            "expiry_timestamp": 1773144600,
            "remaining_seconds": 540,
        })
        bridge = HttpBridge("http://helper", session=session)
        status = bridge.query_emergency_status()
        assert status.active is True
        assert status.used_today == 2
        assert status.expiry_timestamp == 1773144600.0
        assert status.remaining_seconds == 540

    def test_query_emergency_status_unreadable(self, session: MagicMock) -> None:
        session.get.return_value = response(payload=["not", "a", "dict"])
        bridge = HttpBridge("http://helper", session=session)
        assert bridge.query_emergency_status() is None

    def test_query_emergency_status_unreachable(self, session: MagicMock) -> None:
        session.get.side_effect = requests.ConnectionError("refused")
        bridge = HttpBridge("http://helper", session=session)
        assert bridge.query_emergency_status() is None
        assert bridge.available is False


class TestGetBridge:
    def test_http_with_url(self) -> None:
        bridge = get_bridge(SimpleNamespace(bridge="http", bridge_url="http://helper"))
        assert isinstance(bridge, HttpBridge)

    def test_http_without_url_falls_back(self) -> None:
        bridge = get_bridge(SimpleNamespace(bridge="http", bridge_url=None))
        assert isinstance(bridge, OverlayBridge)

    def test_default_is_overlay(self) -> None:
        assert isinstance(get_bridge(SimpleNamespace(bridge="overlay", bridge_url=None)), OverlayBridge)
