"""Configuration models for NetSentinel."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from netsentinel.errors import ConfigError

CONFIG_ENV_VAR = "NETSENTINEL_CONFIG"


class AppSettings(BaseModel):
    """User settings exposed by the persistence sink."""
    auto_scan: bool = Field(True, description="Run scheduled device scans")
    scan_interval_minutes: int = Field(5, ge=1, description="Minutes between scheduled scans")
    traffic_spike_threshold_kbps: float = Field(10000, gt=0, description="Traffic spike threshold (kbps)")
    connection_count_threshold: int = Field(100, ge=1, description="Connection count threshold")
    show_notifications: bool = Field(True, description="Log a notification line for every alert")


class ScanSettings(BaseModel):
    """Host discovery tuning."""
    max_concurrency: int = Field(50, ge=1, description="Probes allowed in flight at once")
    ping_timeout: float = Field(1.0, gt=0, description="Reachability probe timeout (s)")
    neighbor_settle: float = Field(0.05, ge=0, description="Wait for the neighbor cache after a reply (s)")
    resolve_timeout: float = Field(2.0, gt=0, description="Reverse name resolution timeout (s)")
    resolve_hostnames: bool = Field(True, description="Attempt reverse name resolution")
    scheduler_tick: float = Field(60.0, gt=0, description="Scheduler wake-up interval (s)")


class DetectorSettings(BaseModel):
    """Timing and sensitivity of the security heuristics."""
    tick: float = Field(5.0, gt=0, description="Evaluation loop tick (s)")
    recheck_window: float = Field(10.0, ge=0, description="Initial window in which rechecks only accumulate (s)")
    max_rechecks: int = Field(3, ge=1, description="Rechecks required before a spoof is confirmed")
    confirmation_seconds: float = Field(20.0, ge=0, description="Spoof confirmation period (s)")
    hotspot_confirmation_seconds: float = Field(60.0, ge=0, description="Spoof confirmation period in hotspot mode (s)")
    network_change_grace: float = Field(30.0, ge=0, description="Ignore gateway observations after an interface change (s)")
    baseline_window: float = Field(60.0, gt=0, description="Connection baseline window (s)")
    baseline_min_samples: int = Field(10, ge=1, description="Samples required before flood evaluation")
    connection_debounce: float = Field(30.0, ge=0, description="Minimum time between flood alerts (s)")
    threshold_multiplier: float = Field(1.8, gt=0)
    hotspot_threshold_multiplier: float = Field(3.0, gt=0)
    hotspot_max_devices: int = Field(3, ge=0)
    hotspot_networks: list[str] = Field(
        default_factory=lambda: ["10.0.0.0/8", "172.20.0.0/16", "192.168.43.0/24"],
        description="Gateway ranges treated as mobile hotspots",
    )


class FeedSettings(BaseModel):
    """Sampling intervals of the connection and bandwidth feeds."""
    connection_interval: float = Field(2.0, gt=0)
    bandwidth_interval: float = Field(1.0, gt=0)


class NetSentinelConfig(BaseModel):
    """Top-level configuration."""
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".netsentinel")
    settings: AppSettings = Field(default_factory=AppSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    detector: DetectorSettings = Field(default_factory=DetectorSettings)
    feeds: FeedSettings = Field(default_factory=FeedSettings)


def load_config(path: Optional[Path | str] = None) -> NetSentinelConfig:
    """
    Load configuration from a YAML file.

    Args:
        path: Config file. Falls back to $NETSENTINEL_CONFIG, then defaults.

    Raises:
        ConfigError: If the file is not valid YAML or holds invalid values.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return NetSentinelConfig()

    config_path = Path(path).expanduser()
    if not config_path.exists():
        return NetSentinelConfig()

    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping: {config_path}")

    try:
        return NetSentinelConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e
