from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict

import yaml


# --- Load device.yml once at import into global CFG ---------------------------

# This file lives at: src/aquavolt_device/config.py, next to device.yml
CFG_PATH = Path(__file__).resolve().parent / "device.yml"

with CFG_PATH.open("r", encoding="utf-8") as f:
    CFG: Dict[str, Any] = yaml.safe_load(f)


KEY_PREFIX: str = CFG["storage"]["key_prefix"]
ANONYMOUS_UID: str = CFG["storage"]["anonymous_uid"]


# --- Fresh copies so callers can mutate what they get back ---------------------

def device_defaults() -> Dict[str, Any]:
    """name / id / model / firmware / status used to backfill blank fields."""
    return copy.deepcopy(CFG["defaults"])


def wifi_defaults() -> Dict[str, Any]:
    return copy.deepcopy(CFG["wifi"])


def bluetooth_defaults() -> Dict[str, Any]:
    return copy.deepcopy(CFG["bluetooth"])


def pairing_defaults(mode: str) -> Dict[str, Any]:
    return copy.deepcopy(CFG["pairing"][mode])
