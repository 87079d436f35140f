"""Flatten nested device records into one table row per Matter sub-device."""

from typing import Any, Iterable, NamedTuple

from device_matrix.models import FlatRow, MatterDevice, RawDevice, ThirdPartyAppSupport


class Ecosystem(NamedTuple):
    """A third-party platform a Matter-bridged device may be exposed to."""

    prefix: str
    app_name: str
    aliases: tuple[str, ...]


ECOSYSTEMS: tuple[Ecosystem, ...] = (
    Ecosystem("apple", "Apple Home App", ("apple home",)),
    Ecosystem("google", "Google Home App", ("google home",)),
    Ecosystem("smart_things", "SmartThings App", ("smartthings",)),
    Ecosystem("alexa", "Amazon Alexa", ("alexa",)),
)


def _matches(entry: ThirdPartyAppSupport, ecosystem: Ecosystem) -> bool:
    name = entry.app_name.strip().lower()
    return name == ecosystem.app_name.lower() or name in ecosystem.aliases


def _third_party(
    entries: list[ThirdPartyAppSupport],
    ecosystem: Ecosystem,
) -> tuple[list[str], list[str]]:
    """Return ``(supported, notes)`` for the first entry naming *ecosystem*.

    No matching entry gives two empty lists.  That is deliberately the same
    shape as an entry with no clusters; telling "not evaluated" apart from
    "evaluated, nothing supported" is left to presentation code.
    """
    for entry in entries:
        if _matches(entry, ecosystem):
            return list(entry.supported_clusters), list(entry.notes)
    return [], []


def flatten_device(device: RawDevice | dict[str, Any], device_index: int) -> list[FlatRow]:
    """Expand one :class:`RawDevice` into its flat rows.

    Args:
        device: The nested device record (model or raw dict).
        device_index: 0-based position in the source array; only used to
            build ``parent_id``/``row_id``.

    Returns:
        One row per Matter sub-device in source order, or a single row when
        Matter is unsupported or lists no sub-devices.
    """
    if not isinstance(device, RawDevice):
        device = RawDevice.model_validate(device)

    info = device.device_info
    parent_id = f"{info.model}-{device_index}"

    ewelink_supported = bool(device.ewelink_cloud and device.ewelink_cloud.is_supported)
    capabilities = list(device.ewelink_cloud.capabilities) if device.ewelink_cloud else []
    matter_supported = bool(device.matter_bridge and device.matter_bridge.is_supported)
    ha_supported = bool(device.home_assistant and device.home_assistant.is_supported)
    entities = list(device.home_assistant.entities) if device.home_assistant else []

    sub_devices: list[MatterDevice | None] = [None]
    if matter_supported and device.matter_bridge.devices:  # type: ignore[union-attr]
        sub_devices = list(device.matter_bridge.devices)  # type: ignore[union-attr]

    group_size = len(sub_devices)
    rows: list[FlatRow] = []
    for idx, sub in enumerate(sub_devices):
        row: dict[str, Any] = {
            "row_id": f"{parent_id}-{idx}",
            "parent_id": parent_id,
            "is_group_head": idx == 0,
            "device_info_group_id": parent_id,
            "device_info_group_size": group_size,
            "device_info_group_index": idx,
            "device_model": info.model,
            "device_source": info.source,
            "device_brand": info.brand,
            "device_category": info.category,
            "ewelink_supported": ewelink_supported,
            # Each row gets its own list objects so rows never share state.
            "ewelink_capabilities": list(capabilities),
            "matter_supported": matter_supported,
            "matter_device_type": sub.device_type if sub else None,
            "matter_protocol_version": sub.protocol_version if sub else None,
            "matter_supported_clusters": list(sub.supported_clusters) if sub else [],
            "matter_unsupported_clusters": list(sub.unsupported_clusters) if sub else [],
            "home_assistant_supported": ha_supported,
            "home_assistant_entities": list(entities),
        }
        entries = sub.third_party_app_support if sub else []
        for ecosystem in ECOSYSTEMS:
            supported, notes = _third_party(entries, ecosystem)
            row[f"{ecosystem.prefix}_supported"] = supported
            row[f"{ecosystem.prefix}_notes"] = notes
        rows.append(row)  # type: ignore[arg-type]
    return rows


def flatten_devices(devices: Iterable[RawDevice | dict[str, Any]]) -> list[FlatRow]:
    """Flatten a whole device list; row ids are deterministic for equal input."""
    rows: list[FlatRow] = []
    for index, device in enumerate(devices):
        rows.extend(flatten_device(device, index))
    return rows
