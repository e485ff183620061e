"""Persistence sinks for devices, alerts and settings."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from netsentinel.config import AppSettings
from netsentinel.errors import StorageError
from netsentinel.models import Device, SecurityAlert

logger = logging.getLogger("netsentinel.storage")

MAX_ALERTS = 1000


class Store(Protocol):
    """What the registry, alert service and daemon need from persistence."""

    async def upsert_device(self, device: Device) -> None: ...

    async def all_devices(self) -> list[Device]: ...

    async def record_alert(self, alert: SecurityAlert) -> None: ...

    async def recent_alerts(self, count: int = 50) -> list[SecurityAlert]: ...

    async def mark_alert_read(self, alert_id: str) -> bool: ...

    async def latest_settings(self) -> AppSettings | None: ...

    async def save_settings(self, settings: AppSettings) -> None: ...


class MemoryStore:
    """Keeps everything in process memory."""

    def __init__(self):
        self.devices: dict[str, Device] = {}
        self.alerts: list[SecurityAlert] = []
        self.settings: AppSettings | None = None

    async def upsert_device(self, device: Device) -> None:
        self.devices[device.mac_address] = device.copy()

    async def all_devices(self) -> list[Device]:
        return [d.copy() for d in self.devices.values()]

    async def record_alert(self, alert: SecurityAlert) -> None:
        self.alerts.append(alert)
        del self.alerts[:-MAX_ALERTS]

    async def recent_alerts(self, count: int = 50) -> list[SecurityAlert]:
        return list(reversed(self.alerts[-count:])) if count > 0 else []

    async def mark_alert_read(self, alert_id: str) -> bool:
        for alert in self.alerts:
            if alert.alert_id == alert_id:
                alert.is_read = True
                return True
        return False

    async def latest_settings(self) -> AppSettings | None:
        return self.settings.model_copy() if self.settings else None

    async def save_settings(self, settings: AppSettings) -> None:
        self.settings = settings.model_copy()


class JsonStore:
    """
    JSON files under a data directory:

        devices.json   devices keyed by MAC
        alerts.json    alerts, oldest first
        settings.json  user settings
    """

    def __init__(self, data_dir: Path | str):
        self.data_dir = Path(data_dir).expanduser()
        self.devices_file = self.data_dir / "devices.json"
        self.alerts_file = self.data_dir / "alerts.json"
        self.settings_file = self.data_dir / "settings.json"

        self._devices: dict[str, Device] | None = None
        self._alerts: list[SecurityAlert] | None = None

    def _read(self, path: Path, default):
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def _write(self, path: Path, data) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data, indent=2))
            tmp.replace(path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    def _load_devices(self) -> dict[str, Device]:
        if self._devices is None:
            data = self._read(self.devices_file, {})
            try:
                self._devices = {
                    mac: Device.from_dict(entry)
                    for mac, entry in data.get("devices", {}).items()
                }
            except (KeyError, ValueError, AttributeError) as e:
                raise StorageError(f"Corrupt device inventory {self.devices_file}: {e}") from e
            logger.info(f"Loaded {len(self._devices)} devices from {self.devices_file}")
        return self._devices

    def _load_alerts(self) -> list[SecurityAlert]:
        if self._alerts is None:
            data = self._read(self.alerts_file, [])
            try:
                self._alerts = [SecurityAlert.from_dict(entry) for entry in data]
            except (KeyError, ValueError, TypeError) as e:
                raise StorageError(f"Corrupt alert log {self.alerts_file}: {e}") from e
        return self._alerts

    def _save_devices(self) -> None:
        devices = self._load_devices()
        self._write(self.devices_file, {
            "last_updated": datetime.now(timezone.utc).isoformat(),
            "device_count": len(devices),
            "devices": {mac: d.to_dict() for mac, d in devices.items()},
        })

    async def upsert_device(self, device: Device) -> None:
        self._load_devices()[device.mac_address] = device.copy()
        self._save_devices()

    async def all_devices(self) -> list[Device]:
        return [d.copy() for d in self._load_devices().values()]

    async def record_alert(self, alert: SecurityAlert) -> None:
        alerts = self._load_alerts()
        alerts.append(alert)
        del alerts[:-MAX_ALERTS]
        self._write(self.alerts_file, [a.to_dict() for a in alerts])

    async def recent_alerts(self, count: int = 50) -> list[SecurityAlert]:
        if count <= 0:
            return []
        return list(reversed(self._load_alerts()[-count:]))

    async def mark_alert_read(self, alert_id: str) -> bool:
        alerts = self._load_alerts()
        for alert in alerts:
            if alert.alert_id == alert_id:
                alert.is_read = True
                self._write(self.alerts_file, [a.to_dict() for a in alerts])
                return True
        return False

    async def latest_settings(self) -> AppSettings | None:
        """Persisted settings, or None when nothing has been saved yet."""
        data = self._read(self.settings_file, None)
        if data is None:
            return None
        try:
            return AppSettings.model_validate(data)
        except ValidationError as e:
            raise StorageError(f"Invalid settings in {self.settings_file}: {e}") from e

    async def save_settings(self, settings: AppSettings) -> None:
        self._write(self.settings_file, settings.model_dump())
