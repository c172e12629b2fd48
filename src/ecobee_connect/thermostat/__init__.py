"""
Thermostat data retrieval for the ecobee API.

Provides the `Client` session and the minimal thermostat data model.
"""
from .client import Client
from .models import (
    Page,
    Selection,
    SelectionType,
    Thermostat,
    ThermostatRevision,
    ThermostatSummary,
)

__all__: list[str] = [
    "Client",
    "Page",
    "Selection",
    "SelectionType",
    "Thermostat",
    "ThermostatRevision",
    "ThermostatSummary",
]
