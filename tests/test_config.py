from __future__ import annotations

from cramr import config


def test_environment_overrides_toml(monkeypatch, tmp_path):
    config_path = tmp_path / "cramr.toml"
    config.write_config_file(
        {"app_port": 9000, "enable_scheduler": True, "cors_origins": "http://a,http://b"},
        path=config_path,
    )
    monkeypatch.setenv("CRAMR_BASE_DIR", str(tmp_path))
    monkeypatch.setenv("CRAMR_ENABLE_SCHEDULER", "off")
    monkeypatch.delenv("CRAMR_APP_PORT", raising=False)

    loaded = config.load_settings(config_path)

    assert loaded.app_port == 9000
    assert loaded.enable_scheduler is False
    assert loaded.allowed_origins == ["http://a", "http://b"]
    assert loaded.database_url == f"sqlite:///{tmp_path / 'data' / 'cramr.db'}"
    assert loaded.material_dir.is_dir()


def test_settings_as_dict_masks_secrets(monkeypatch, tmp_path):
    monkeypatch.setenv("CRAMR_BASE_DIR", str(tmp_path))
    monkeypatch.setenv("CRAMR_SMTP_PASSWORD", "hunter2")

    payload = config.settings_as_dict(config.load_settings(tmp_path / "missing.toml"))

    assert payload["smtp_password"] == "***"
    assert payload["otp_max_attempts"] == 3
