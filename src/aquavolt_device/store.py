# src/aquavolt_device/store.py
"""
Per-account local record of the paired device.

One JSON document per account under "device:<uid>" ("device:anonymous"
when nobody is signed in). Last write wins. Reads never raise: an
unreadable or missing record is reported as None.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Protocol, Union

from pydantic import ValidationError

from aquavolt_device.config import (
    ANONYMOUS_UID,
    KEY_PREFIX,
    bluetooth_defaults,
    device_defaults,
    pairing_defaults,
    wifi_defaults,
)
from aquavolt_device.merge import deep_merge
from aquavolt_device.models import ConnectionType, DeviceBinding

log = logging.getLogger(__name__)

Record = Union[DeviceBinding, Dict[str, Any]]


class KeyValueStorage(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


def _as_dict(record: Record) -> Dict[str, Any]:
    if isinstance(record, DeviceBinding):
        return record.to_store()
    return DeviceBinding.model_validate(record).to_store()


class DeviceBindingStore:
    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage

    @staticmethod
    def key_for(uid: Optional[str]) -> str:
        return f"{KEY_PREFIX}:{uid or ANONYMOUS_UID}"

    async def _read(self, uid: Optional[str]) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.storage.get(self.key_for(uid))
            if not raw:
                return None
            data = json.loads(raw)
        except Exception as ex:
            log.warning("device record unreadable for %s: %s", self.key_for(uid), ex)
            return None
        return data if isinstance(data, dict) else None

    async def _write(self, uid: Optional[str], data: Dict[str, Any]) -> bool:
        try:
            await self.storage.set(self.key_for(uid), json.dumps(data))
        except Exception as ex:
            log.warning("device record not saved for %s: %s", self.key_for(uid), ex)
            return False
        return True

    # ---------------- public API ----------------

    async def get(self, uid: Optional[str]) -> Optional[DeviceBinding]:
        data = await self._read(uid)
        if data is None:
            return None
        try:
            return DeviceBinding.model_validate(data)
        except ValidationError as ex:
            log.warning("device record malformed for %s: %s", self.key_for(uid), ex)
            return None

    async def save(self, uid: Optional[str], record: Record) -> bool:
        """Overwrite the stored record wholesale."""
        return await self._write(uid, _as_dict(record))

    async def update(self, uid: Optional[str], patch: Dict[str, Any]) -> Optional[DeviceBinding]:
        """Deep-merge `patch` (camelCase keys) into the stored record; returns the merged record."""
        current = await self._read(uid) or {}
        merged = deep_merge(current, patch)
        try:
            binding = DeviceBinding.model_validate(merged)
        except ValidationError as ex:
            log.warning("device patch rejected for %s: %s", self.key_for(uid), ex)
            return None
        if not await self._write(uid, merged):
            return None
        return binding

    async def set_connection_type(self, uid: Optional[str], connection_type: Union[ConnectionType, str]) -> DeviceBinding:
        """Switch the live mode, filling that mode's details with defaults when missing."""
        mode = ConnectionType(connection_type)
        nxt: Dict[str, Any] = dict(await self._read(uid) or {})
        defaults = device_defaults()
        nxt.update(connectionType=mode.value, status=defaults["status"], updatedAt=_now_ms())

        for field in ("name", "id", "model", "firmware"):
            if not nxt.get(field):
                nxt[field] = defaults[field]

        if mode is ConnectionType.wifi:
            nxt["wifi"] = nxt.get("wifi") or wifi_defaults()
        else:
            nxt["bluetooth"] = nxt.get("bluetooth") or bluetooth_defaults()

        await self._write(uid, nxt)
        return DeviceBinding.model_validate(nxt)

    async def clear(self, uid: Optional[str]) -> bool:
        try:
            await self.storage.remove(self.key_for(uid))
        except Exception as ex:
            log.warning("device record not removed for %s: %s", self.key_for(uid), ex)
            return False
        return True

    # ---------------- pairing flows ----------------

    def _paired(self, mode: ConnectionType, device: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        device = device or {}
        pairing = pairing_defaults(mode.value)
        defaults = device_defaults()
        return {
            "id": device.get("id") or pairing["id"],
            "name": device.get("name") or pairing["name"],
            "status": defaults["status"],
            "connectionType": mode.value,
            "model": defaults["model"],
            "firmware": defaults["firmware"],
            "connectedAt": _now_ms(),
        }

    async def pair_wifi(self, uid: Optional[str], device: Optional[Dict[str, Any]] = None) -> DeviceBinding:
        """WiFi provisioning finished: WiFi live, Bluetooth kept as disconnected defaults."""
        record = self._paired(ConnectionType.wifi, device)
        record["wifi"] = wifi_defaults()
        record["bluetooth"] = {**bluetooth_defaults(), "statusLabel": "Disconnected"}
        await self._write(uid, record)
        return DeviceBinding.model_validate(record)

    async def pair_bluetooth(self, uid: Optional[str], device: Optional[Dict[str, Any]] = None) -> DeviceBinding:
        """Bluetooth pairing finished: Bluetooth live, WiFi kept as defaults."""
        record = self._paired(ConnectionType.bluetooth, device)
        bluetooth = bluetooth_defaults()
        if device and device.get("rssi") is not None:
            bluetooth["rssi"] = device["rssi"]
        record["bluetooth"] = bluetooth
        record["wifi"] = wifi_defaults()
        await self._write(uid, record)
        return DeviceBinding.model_validate(record)

    async def disconnect_bluetooth(self, uid: Optional[str]) -> Optional[DeviceBinding]:
        return await self.update(uid, {"bluetooth": {"statusLabel": "Disconnected"}})
