"""Global configuration for Cramr."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

DEFAULT_CORS_ORIGINS = ",".join(
    [
        "http://localhost:8081",
        "http://localhost:3000",
        "http://localhost:19006",
    ]
)

DEFAULTS: dict[str, Any] = {
    "database_url": "",
    "db_timeout_seconds": 10,
    "app_host": "0.0.0.0",
    "app_port": 8080,
    "cors_origins": DEFAULT_CORS_ORIGINS,
    "public_base_url": "http://localhost:8080",
    "max_image_bytes": 10 * 1024 * 1024,
    "max_material_bytes": 20 * 1024 * 1024,
    "max_materials_per_event": 10,
    "otp_ttl_minutes": 15,
    "otp_max_attempts": 3,
    "reset_code_ttl_minutes": 10,
    "reset_token_ttl_minutes": 5,
    "event_retention_days": 30,
    "attendee_retention_days": 60,
    "cleanup_interval_hours": 24,
    "otp_sweep_minutes": 5,
    "enable_scheduler": True,
    "mail_from": "no-reply@cramr.app",
    "mail_from_name": "Cramr Team",
    "smtp_host": "smtp.gmail.com",
    "smtp_port": 587,
    "smtp_username": "",
    "smtp_password": "",
    "seed_users": 10,
    "seed_events_per_user": 2,
}

TYPE_CASTERS: dict[str, Callable[[Any], Any]] = {
    "database_url": str,
    "db_timeout_seconds": int,
    "app_host": str,
    "app_port": int,
    "cors_origins": str,
    "public_base_url": str,
    "max_image_bytes": int,
    "max_material_bytes": int,
    "max_materials_per_event": int,
    "otp_ttl_minutes": int,
    "otp_max_attempts": int,
    "reset_code_ttl_minutes": int,
    "reset_token_ttl_minutes": int,
    "event_retention_days": int,
    "attendee_retention_days": int,
    "cleanup_interval_hours": int,
    "otp_sweep_minutes": int,
    "enable_scheduler": bool,
    "mail_from": str,
    "mail_from_name": str,
    "smtp_host": str,
    "smtp_port": int,
    "smtp_username": str,
    "smtp_password": str,
    "seed_users": int,
    "seed_events_per_user": int,
}

# Keys never echoed back by `cramr config --show`.
SECRET_KEYS = {"smtp_password"}


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    upload_dir: Path
    database_url: str
    db_timeout_seconds: int
    app_host: str
    app_port: int
    cors_origins: str
    public_base_url: str
    max_image_bytes: int
    max_material_bytes: int
    max_materials_per_event: int
    otp_ttl_minutes: int
    otp_max_attempts: int
    reset_code_ttl_minutes: int
    reset_token_ttl_minutes: int
    event_retention_days: int
    attendee_retention_days: int
    cleanup_interval_hours: int
    otp_sweep_minutes: int
    enable_scheduler: bool
    mail_from: str
    mail_from_name: str
    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    seed_users: int
    seed_events_per_user: int
    root_token_key: str
    config_path: Path

    @property
    def otp_ttl(self) -> timedelta:
        return timedelta(minutes=self.otp_ttl_minutes)

    @property
    def reset_code_ttl(self) -> timedelta:
        return timedelta(minutes=self.reset_code_ttl_minutes)

    @property
    def reset_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.reset_token_ttl_minutes)

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def material_dir(self) -> Path:
        return self.upload_dir / "study-materials"


def _boolify(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Cannot parse boolean value from {value!r}")


def _cast_value(key: str, value: Any) -> Any:
    if key not in TYPE_CASTERS:
        return value
    caster = TYPE_CASTERS[key]
    if caster is bool:
        return _boolify(value)
    return caster(value)


def _load_toml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _config_layered_value(key: str, *, toml_config: dict[str, Any]) -> Any:
    env_key = f"CRAMR_{key.upper()}"
    if env_key in os.environ:
        return _cast_value(key, os.environ[env_key])
    if key in toml_config:
        return _cast_value(key, toml_config[key])
    return DEFAULTS[key]


def _resolve_paths(
    *,
    base_dir: Path,
    data_dir: str | Path | None,
    upload_dir: str | Path | None,
):
    resolved_base = Path(base_dir)
    resolved_data = Path(data_dir) if data_dir else resolved_base / "data"
    if not resolved_data.is_absolute():
        resolved_data = resolved_base / resolved_data
    resolved_uploads = Path(upload_dir) if upload_dir else resolved_data / "uploads"
    if not resolved_uploads.is_absolute():
        resolved_uploads = resolved_base / resolved_uploads
    return resolved_base, resolved_data, resolved_uploads


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("CRAMR_BASE_DIR", Path.cwd()))
    env_config = os.getenv("CRAMR_CONFIG")
    config_path = Path(config_override or env_config or base_dir / "cramr.toml")
    toml_config = _load_toml_config(config_path)

    base_dir_value, data_dir_value, upload_dir_value = _resolve_paths(
        base_dir=base_dir,
        data_dir=os.getenv("CRAMR_DATA_DIR", toml_config.get("data_dir")),
        upload_dir=os.getenv("CRAMR_UPLOAD_DIR", toml_config.get("upload_dir")),
    )

    values = {
        key: _config_layered_value(key, toml_config=toml_config) for key in DEFAULTS
    }
    if not values["database_url"]:
        values["database_url"] = f"sqlite:///{data_dir_value / 'cramr.db'}"

    settings = Settings(
        base_dir=base_dir_value,
        data_dir=data_dir_value,
        upload_dir=upload_dir_value,
        root_token_key="root_admin_token",
        config_path=config_path,
        **values,
    )
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.material_dir.mkdir(parents=True, exist_ok=True)
    return settings


def settings_as_dict(settings: Settings) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "base_dir": str(settings.base_dir),
        "data_dir": str(settings.data_dir),
        "upload_dir": str(settings.upload_dir),
    }
    for key in DEFAULTS:
        if key in SECRET_KEYS:
            payload[key] = "***" if getattr(settings, key) else ""
            continue
        payload[key] = getattr(settings, key)
    return payload


def _toml_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def write_config_file(config: dict[str, Any], *, path: Path) -> None:
    lines = ["# Cramr configuration\n"]
    for key in sorted(config.keys()):
        lines.append(f"{key} = {_toml_literal(config[key])}\n")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(lines), encoding="utf-8")


def update_config_file(updates: dict[str, Any], *, path: Path | None = None) -> Settings:
    current_settings = settings if "settings" in globals() else load_settings()
    target_path = path or current_settings.config_path
    existing = _load_toml_config(target_path)
    merged = {**existing}
    for key, value in updates.items():
        if key not in DEFAULTS:
            continue
        merged[key] = _cast_value(key, value)
    write_config_file(merged, path=target_path)
    new_settings = load_settings(target_path)
    globals()["settings"] = new_settings
    return new_settings


settings = load_settings()
