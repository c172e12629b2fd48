"""
Minimal ecobee thermostat data model.

Only the fields the client needs are typed; the large nested objects
(runtime, settings, ...) are kept as raw dicts.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from typing import Any, Optional
from urllib.parse import quote_plus

from ..api_auth.errors import DecodeError


class SelectionType:
    """Values for `Selection.selection_type`."""

    REGISTERED = "registered"
    THERMOSTATS = "thermostats"
    MANAGEMENT_SET = "managementSet"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


@dataclass
class Selection:
    """
    ecobee selection object. Serializes to camelCase with empty/false fields omitted.
    """

    selection_type: str = SelectionType.REGISTERED
    selection_match: str = ""
    include_runtime: bool = False
    include_extended_runtime: bool = False
    include_electricity: bool = False
    include_settings: bool = False
    include_location: bool = False
    include_program: bool = False
    include_events: bool = False
    include_device: bool = False
    include_technician: bool = False
    include_utility: bool = False
    include_management: bool = False
    include_alerts: bool = False
    include_reminders: bool = False
    include_weather: bool = False
    include_house_details: bool = False
    include_oem_cfg: bool = False
    include_equipment_status: bool = False
    include_notification_settings: bool = False
    include_privacy: bool = False
    include_version: bool = False
    include_security_settings: bool = False
    include_sensors: bool = False
    include_audio: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value:
                out[_camel(f.name)] = value
        return out


def assemble_select_url(api_url: str, selection: Selection) -> str:
    """Return `api_url?json=<selection>` as the ecobee read endpoints expect."""
    body = json.dumps({"selection": selection.to_dict()}, separators=(",", ":"))
    return f"{api_url}?json={quote_plus(body)}"


def _int_field(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key) or 0
    if isinstance(value, bool):
        raise DecodeError(f"{key!r} is not an integer: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise DecodeError(f"{key!r} is not an integer: {value!r}") from e


@dataclass(frozen=True)
class ThermostatRevision:
    """
    One entry of a thermostat summary `revisionList`:

        identifier:name:connected:thermostatRev:alertsRev:runtimeRev:intervalRev
    """

    identifier: str
    name: str
    connected: bool
    thermostat_revision: str
    alerts_revision: str
    runtime_revision: str
    interval_revision: str

    @classmethod
    def parse(cls, value: str) -> "ThermostatRevision":
        if not isinstance(value, str):
            raise DecodeError(f"revision entry is not a string: {value!r}")
        parts = value.split(":")
        if len(parts) != 7:
            raise DecodeError(f"revision entry must have 7 colon-separated fields, got {len(parts)}: {value!r}")
        return cls(
            identifier=parts[0],
            name=parts[1],
            connected=parts[2].lower() == "true",
            thermostat_revision=parts[3],
            alerts_revision=parts[4],
            runtime_revision=parts[5],
            interval_revision=parts[6],
        )


@dataclass(frozen=True)
class ThermostatSummary:
    thermostat_count: int = 0
    revision_list: list[str] = field(default_factory=list)
    status_list: list[str] = field(default_factory=list)
    status: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ThermostatSummary":
        return cls(
            thermostat_count=_int_field(payload, "thermostatCount"),
            revision_list=list(payload.get("revisionList") or []),
            status_list=list(payload.get("statusList") or []),
            status=dict(payload.get("status") or {}),
        )

    def revisions(self) -> list[ThermostatRevision]:
        return [ThermostatRevision.parse(r) for r in self.revision_list]


@dataclass(frozen=True)
class Page:
    page: int = 0
    total_pages: int = 0
    page_size: int = 0
    total: int = 0

    @classmethod
    def from_payload(cls, payload: Optional[dict[str, Any]]) -> "Page":
        payload = payload or {}
        if not isinstance(payload, dict):
            raise DecodeError(f"page is not a JSON object (got {type(payload).__name__})")
        return cls(
            page=_int_field(payload, "page"),
            total_pages=_int_field(payload, "totalPages"),
            page_size=_int_field(payload, "pageSize"),
            total=_int_field(payload, "total"),
        )

    @property
    def has_more(self) -> bool:
        return self.page != self.total_pages


@dataclass(frozen=True)
class Thermostat:
    identifier: str
    name: str = ""
    brand: str = ""
    model_number: str = ""
    is_registered: bool = False
    runtime: dict[str, Any] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Thermostat":
        return cls(
            identifier=str(payload.get("identifier") or ""),
            name=str(payload.get("name") or ""),
            brand=str(payload.get("brand") or ""),
            model_number=str(payload.get("modelNumber") or ""),
            is_registered=bool(payload.get("isRegistered", False)),
            runtime=dict(payload.get("runtime") or {}),
            settings=dict(payload.get("settings") or {}),
            raw=payload,
        )


__all__ = [
    "Page",
    "Selection",
    "SelectionType",
    "Thermostat",
    "ThermostatRevision",
    "ThermostatSummary",
    "assemble_select_url",
]
