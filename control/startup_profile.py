from __future__ import annotations

from dataclasses import dataclass

ACCRUAL_MODES = ("random", "upstream")


@dataclass
class StartupProfile:
    role: str
    host: str
    port: int


def _require_valid_port(port: int, field_name: str = "port") -> None:
    if int(port) < 1 or int(port) > 65535:
        raise ValueError(f"{field_name} must be in range 1..65535")


def _require_non_empty_host(host: str) -> None:
    if not str(host or "").strip():
        raise ValueError("host is required")


def validate_control_profile(
    profile: StartupProfile,
    sync_interval_seconds: float,
    accrual_mode: str,
    accrual_max_gb: float = 0.5,
) -> None:
    _require_non_empty_host(profile.host)
    _require_valid_port(profile.port)
    if float(sync_interval_seconds) <= 0:
        raise ValueError("sync interval must be a positive number of seconds")
    if accrual_mode not in ACCRUAL_MODES:
        raise ValueError(f"accrual mode must be one of: {', '.join(ACCRUAL_MODES)}")
    if float(accrual_max_gb) < 0:
        raise ValueError("accrual max GB must not be negative")
