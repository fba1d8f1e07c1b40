import asyncio
import json

import pytest

from aquavolt_client.storage.local import InMemoryLocalStorage, LocalStorageError
from aquavolt_device.models import ConnectionType, DeviceBinding
from aquavolt_device.store import DeviceBindingStore


class BrokenStorage(InMemoryLocalStorage):
    async def get(self, key):
        raise LocalStorageError("disk gone")

    async def set(self, key, value):
        raise LocalStorageError("disk gone")


@pytest.fixture
def storage():
    return InMemoryLocalStorage()


@pytest.fixture
def devices(storage):
    return DeviceBindingStore(storage)


def test_keys_are_per_account(devices):
    assert devices.key_for("u1") == "device:u1"
    assert devices.key_for(None) == "device:anonymous"
    assert devices.key_for("") == "device:anonymous"


def test_get_missing_is_none(devices):
    assert asyncio.run(devices.get("u1")) is None


def test_save_then_get(devices, storage):
    record = DeviceBinding(id="dev-1", name="Roof Tank", connection_type=ConnectionType.wifi)
    assert asyncio.run(devices.save("u1", record)) is True

    got = asyncio.run(devices.get("u1"))
    assert got.id == "dev-1"
    assert got.connection_type is ConnectionType.wifi
    assert json.loads(storage.items["device:u1"])["connectionType"] == "wifi"
    assert asyncio.run(devices.get("u2")) is None


def test_get_never_raises(storage):
    storage.items["device:u1"] = "{not json"
    assert asyncio.run(DeviceBindingStore(storage).get("u1")) is None
    assert asyncio.run(DeviceBindingStore(BrokenStorage()).get("u1")) is None


def test_save_failure_reports_false():
    assert asyncio.run(DeviceBindingStore(BrokenStorage()).save("u1", {"id": "x"})) is False


def test_update_deep_merges_leaf(devices):
    async def scenario():
        await devices.save("u1", {"bluetooth": {"rssi": -52, "statusLabel": "Connected"}})
        return await devices.update("u1", {"bluetooth": {"statusLabel": "Disconnected"}})

    merged = asyncio.run(scenario())
    assert merged.bluetooth.rssi == -52
    assert merged.bluetooth.status_label == "Disconnected"


def test_update_without_record_starts_from_empty(devices):
    merged = asyncio.run(devices.update("u1", {"name": "Tank"}))
    assert merged.name == "Tank"
    assert asyncio.run(devices.get("u1")).name == "Tank"


def test_set_connection_type_wifi_keeps_bluetooth(devices):
    async def scenario():
        await devices.save("u1", {"bluetooth": {"rssi": -60, "statusLabel": "Connected", "rangeMeters": 10}})
        return await devices.set_connection_type("u1", "wifi")

    rec = asyncio.run(scenario())
    assert rec.connection_type is ConnectionType.wifi
    assert rec.wifi.ssid == "HomeNetwork_5G"
    assert rec.wifi.band == "2.4 GHz"
    assert rec.wifi.signal_dbm == -45
    assert rec.wifi.strength_label == "Strong (-45 dBm)"
    assert rec.wifi.ip == "192.168.1.142"
    assert rec.bluetooth.rssi == -60
    assert rec.status == "Online"
    assert rec.updated_at is not None
    assert (rec.name, rec.id, rec.model, rec.firmware) == (
        "AquaVolt Monitor", "AquaVolt-ESP32-A1", "ESP32-WROOM-32", "v2.4.1",
    )


def test_set_connection_type_keeps_existing_details(devices):
    async def scenario():
        await devices.save("u1", {"name": "Roof Tank", "wifi": {"ssid": "Barn"}})
        return await devices.set_connection_type("u1", ConnectionType.bluetooth)

    rec = asyncio.run(scenario())
    assert rec.name == "Roof Tank"
    assert rec.wifi.ssid == "Barn"
    assert rec.bluetooth.status_label == "Connected"


def test_set_connection_type_rejects_unknown_mode(devices):
    with pytest.raises(ValueError):
        asyncio.run(devices.set_connection_type("u1", "zigbee"))


def test_clear_then_get_is_none(devices):
    async def scenario():
        await devices.pair_wifi("u1")
        assert await devices.clear("u1") is True
        return await devices.get("u1")

    assert asyncio.run(scenario()) is None


def test_pair_wifi_builds_record(devices):
    rec = asyncio.run(devices.pair_wifi("u1"))
    assert rec.id == "ESP32-AV-8F3D"
    assert rec.name == "AquaVolt Device"
    assert rec.connection_type is ConnectionType.wifi
    assert rec.bluetooth.status_label == "Disconnected"
    assert rec.connected_at is not None
    assert asyncio.run(devices.get("u1")) == rec


def test_pair_bluetooth_uses_scanned_device(devices):
    rec = asyncio.run(devices.pair_bluetooth("u1", {"id": "AquaVolt-ESP32-B2", "name": "Barn", "rssi": -70}))
    assert rec.id == "AquaVolt-ESP32-B2"
    assert rec.bluetooth.rssi == -70
    assert rec.bluetooth.status_label == "Connected"
    assert rec.wifi.ssid == "HomeNetwork_5G"


def test_disconnect_bluetooth(devices):
    async def scenario():
        await devices.pair_bluetooth("u1")
        return await devices.disconnect_bluetooth("u1")

    rec = asyncio.run(scenario())
    assert rec.bluetooth.status_label == "Disconnected"
    assert rec.bluetooth.rssi == -52
