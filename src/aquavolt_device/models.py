# src/aquavolt_device/models.py

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConnectionType(str, Enum):
    wifi = "wifi"
    bluetooth = "bluetooth"


class WifiInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    ssid: Optional[str] = None
    band: Optional[str] = None
    signal_dbm: Optional[int] = Field(default=None, alias="signalDbm")
    strength_label: Optional[str] = Field(default=None, alias="strengthLabel")
    ip: Optional[str] = None


class BluetoothInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    rssi: Optional[int] = None
    status_label: Optional[str] = Field(default=None, alias="statusLabel")
    range_meters: Optional[float] = Field(default=None, alias="rangeMeters")


class DeviceBinding(BaseModel):
    """
    The one device currently associated with an account, as saved locally.

    Both sub-records may be present at once; `connection_type` says which
    one is live, the other keeps its last (or default) values so switching
    back needs no re-entry.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None
    connection_type: Optional[ConnectionType] = Field(default=None, alias="connectionType")
    model: Optional[str] = None
    firmware: Optional[str] = None
    wifi: Optional[WifiInfo] = None
    bluetooth: Optional[BluetoothInfo] = None
    connected_at: Optional[int] = Field(default=None, alias="connectedAt")
    updated_at: Optional[int] = Field(default=None, alias="updatedAt")

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
