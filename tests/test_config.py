"""Tests for config loading and license verification."""

import json
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests
import yaml

from pushin import config as config_module
from pushin.config import (
    PushinConfig,
    create_default_config,
    get_config_path,
    get_license_cache_path,
    get_license_path,
    load_config,
    save_config,
    verify_license,
)
from pushin.plans import PlanTier


def server_reply(payload: dict, ok: bool = True) -> MagicMock:
    resp = MagicMock()
    resp.ok = ok
    resp.json.return_value = payload
    return resp


class TestLoadConfig:
    def test_defaults_without_file(self) -> None:
        config = load_config()
        assert config.grace_period_seconds == 0
        assert config.sync_interval_seconds == 3
        assert config.bridge == "overlay"
        assert len(config.targets) == 5

    def test_reads_yaml(self) -> None:
        get_config_path().write_text(yaml.safe_dump({
            "block_targets": [
                "com.reddit.frontpage",
                {"id": "yt", "name": "YouTube", "identifier": "com.google.android.youtube"},
                {"id": "reddit.com", "name": "Reddit", "type": "website"},
            ],
            "grace_period_seconds": 5,
            "bridge": "http",
            "bridge_url": "http://127.0.0.1:8765",
            "plan_tier": "pro",
        }))

        config = load_config()
        assert [t.identifier for t in config.targets] == [
            "com.reddit.frontpage", "com.google.android.youtube", "reddit.com",
        ]
        assert config.targets[2].type == "website"
        assert config.grace_period_seconds == 5
        assert config.bridge_url == "http://127.0.0.1:8765"
        assert config.effective_plan_tier == PlanTier.PRO

    def test_empty_file_uses_defaults(self) -> None:
        get_config_path().write_text("")
        assert load_config().workout_mode == "normal"

    def test_broken_yaml_uses_defaults(self, capsys) -> None:
        get_config_path().write_text("block_targets: [unclosed\n")
        config = load_config()
        assert config.grace_period_seconds == 0
        assert "Error loading config" in capsys.readouterr().out

    def test_save_and_reload(self) -> None:
        config = PushinConfig(grace_period_seconds=10, webhook_url="https://hooks.example/x")
        save_config(config)
        again = load_config()
        assert again.grace_period_seconds == 10
        assert again.webhook_url == "https://hooks.example/x"
        assert again.block_targets == config.block_targets

    def test_example_config_is_valid_yaml(self) -> None:
        create_default_config()
        config = load_config()
        assert config.default_unlock_minutes == 10
        assert config.targets[0].identifier == "com.instagram.android"

    def test_pinned_tier_skips_license(self) -> None:
        with patch("pushin.config.requests.post") as post:
            assert PushinConfig(plan_tier="advanced").effective_plan_tier == PlanTier.ADVANCED
        post.assert_not_called()


class TestVerifyLicense:
    def test_no_license_file(self) -> None:
        info = verify_license()
        assert info.valid is False
        assert info.tier == "free"

    def test_bad_format(self) -> None:
        get_license_path().write_text("not-a-key")
        assert verify_license().reason == "Invalid license format"

    def test_server_verification_writes_cache(self) -> None:
        get_license_path().write_text("pushin_abc123\n")
        with patch("pushin.config.requests.post", return_value=server_reply(
            {"valid": True, "tier": "advanced", "expires_at": "2027-01-01"}
        )) as post:
            info = verify_license()

        assert info.valid is True
        assert info.tier == "advanced"
        assert post.call_args.kwargs["json"] == {"license_key": "pushin_abc123"}
        cache = json.loads(get_license_cache_path().read_text())
        assert cache["tier"] == "advanced"

    def test_fresh_cache_skips_server(self) -> None:
        get_license_path().write_text("pushin_abc123")
        get_license_cache_path().write_text(json.dumps({
            "valid": True,
            "tier": "pro",
            "verified_at": (datetime.utcnow() - timedelta(days=1)).isoformat(),
        }))
        with patch("pushin.config.requests.post") as post:
            info = verify_license()
        post.assert_not_called()
        assert info.cached is True
        assert info.tier == "pro"

    def test_offline_with_old_cache(self) -> None:
        get_license_path().write_text("pushin_abc123")
        get_license_cache_path().write_text(json.dumps({
            "valid": True,
            "tier": "pro",
            "verified_at": (datetime.utcnow() - timedelta(days=10)).isoformat(),
        }))
        with patch("pushin.config.requests.post", side_effect=requests.ConnectionError("offline")):
            info = verify_license()
        assert info.valid is True
        assert info.reason == "Offline mode (cached)"

    def test_offline_without_cache(self) -> None:
        get_license_path().write_text("pushin_abc123")
        with patch("pushin.config.requests.post", side_effect=requests.Timeout("slow")):
            info = verify_license()
        assert info.valid is False
        assert info.tier == "free"

    def test_rejected_key(self) -> None:
        get_license_path().write_text("pushin_revoked")
        with patch("pushin.config.requests.post", return_value=server_reply(
            {"valid": False, "tier": "pro", "reason": "Subscription cancelled"}
        )):
            info = verify_license()
        assert info.valid is False
        assert info.tier == "free"
        assert info.reason == "Subscription cancelled"

    @pytest.mark.parametrize("tier", ["pro", "advanced"])
    def test_license_sets_effective_tier(self, tier: str) -> None:
        get_license_path().write_text("pushin_abc123")
        with patch("pushin.config.requests.post", return_value=server_reply({"valid": True, "tier": tier})):
            assert PushinConfig().effective_plan_tier == PlanTier(tier)


def test_data_dir_is_under_home(pushin_home: Path) -> None:
    assert config_module.get_pushin_dir() == pushin_home
