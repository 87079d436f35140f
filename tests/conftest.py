"""Shared sample data and fixtures."""

import copy
import json
from pathlib import Path
from typing import Any

import pytest

from device_matrix.engine import DeviceMatrixEngine
from device_matrix.store import RowStore, parse_payload

# Three devices: one without Matter, one bridged as two Matter sub-devices,
# one with Matter enabled but no sub-devices listed.
SAMPLE_PAYLOAD: dict[str, Any] = {
    "updateTime": 1700000000000,
    "supportDevices": [
        {
            "deviceInfo": {"model": "MINI-R2", "type": "WiFi", "brand": "SONOFF", "category": "Switch"},
            "ewelinkCloud": {"isSupported": True, "capabilities": ["power", "rssi"]},
            "matterBridge": {"isSupported": False, "devices": []},
            "homeAssistant": {"isSupported": True, "entities": ["switch"]},
        },
        {
            "deviceInfo": {"model": "ZBMINI-L", "type": "Zigbee", "brand": "SONOFF", "category": "Switch"},
            "ewelinkCloud": {"isSupported": True, "capabilities": ["power"]},
            "matterBridge": {
                "isSupported": True,
                "devices": [
                    {
                        "deviceType": "On/Off Light",
                        "protocolVersion": "1.2",
                        "supportedClusters": ["OnOff"],
                        "unsupportedClusters": ["LevelControl"],
                        "thirdPartyAppSupport": [],
                    },
                    {
                        "deviceType": "On/Off Plug-in Unit",
                        "protocolVersion": "1.2",
                        "supportedClusters": ["OnOff"],
                        "unsupportedClusters": [],
                        "thirdPartyAppSupport": [
                            {"appName": "Apple Home App", "supportedClusters": ["OnOff"], "notes": ["Requires iOS 17"]},
                        ],
                    },
                ],
            },
            "homeAssistant": {"isSupported": False, "entities": []},
        },
        {
            "deviceInfo": {"model": "SNZB-02", "type": "Zigbee", "brand": "SONOFF", "category": "Sensor"},
            "ewelinkCloud": {"isSupported": True, "capabilities": ["temperature", "humidity"]},
            "matterBridge": {"isSupported": True, "devices": []},
            "homeAssistant": {"isSupported": True, "entities": ["sensor"]},
        },
    ],
}

# Extra devices: one with no brand and nothing supported, one exposed to
# Google Home.
EXTRA_DEVICES: list[dict[str, Any]] = [
    {
        "deviceInfo": {"model": "T1", "type": "Zigbee", "brand": None, "category": "Sensor"},
        "ewelinkCloud": {"isSupported": False, "capabilities": []},
        "matterBridge": {"isSupported": False},
        "homeAssistant": {"isSupported": False},
    },
    {
        "deviceInfo": {"model": "BASIC-R4", "type": "WiFi", "brand": "SONOFF", "category": "Switch"},
        "ewelinkCloud": {"isSupported": True, "capabilities": ["power"]},
        "matterBridge": {
            "isSupported": True,
            "devices": [
                {
                    "deviceType": "On/Off Plug-in Unit",
                    "protocolVersion": "1.3",
                    "supportedClusters": ["OnOff"],
                    "thirdPartyAppSupport": [
                        {"appName": "Google Home App", "supportedClusters": ["OnOff"]},
                    ],
                },
            ],
        },
        "homeAssistant": {"isSupported": True, "entities": ["switch", "sensor"]},
    },
]

# Row ids of the sample store, in store order.
ROW_A = "MINI-R2-0-0"
ROW_B0 = "ZBMINI-L-1-0"
ROW_B1 = "ZBMINI-L-1-1"
ROW_C = "SNZB-02-2-0"


def row_ids(rows: list[dict[str, Any]]) -> list[str]:
    return [r["row_id"] for r in rows]


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    return copy.deepcopy(SAMPLE_PAYLOAD)


@pytest.fixture
def extended_payload() -> dict[str, Any]:
    payload = copy.deepcopy(SAMPLE_PAYLOAD)
    payload["supportDevices"].extend(copy.deepcopy(EXTRA_DEVICES))
    return payload


@pytest.fixture
def sample_store(sample_payload) -> RowStore:
    return RowStore.from_payload(parse_payload(sample_payload))


@pytest.fixture
def extended_store(extended_payload) -> RowStore:
    return RowStore.from_payload(parse_payload(extended_payload))


@pytest.fixture
def engine(sample_payload) -> DeviceMatrixEngine:
    """Engine loaded with the three-device sample."""
    eng = DeviceMatrixEngine()
    eng.load_payload(sample_payload)
    return eng


@pytest.fixture
def sample_file(tmp_path: Path, sample_payload) -> Path:
    path = tmp_path / "matrix.json"
    path.write_text(json.dumps(sample_payload), encoding="utf-8")
    return path
