"""Derived pack metrics computed from one decoded telemetry snapshot."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Optional

import numpy as np

if TYPE_CHECKING:
    from .jk.frames import TelemetrySnapshot


@dataclass(frozen=True)
class CellReading:
    index: int
    voltage: float


@dataclass(frozen=True)
class DerivedMetrics:
    average_cell_voltage: float
    min_cell: CellReading
    max_cell: CellReading
    cell_voltage_spread: float
    smoothed_current: float
    available_capacity: float
    estimated_time_remaining: Optional[float]  # hours; None while no current flows
    charge_rate: float


def compute_metrics(snapshot: TelemetrySnapshot, smoothed_current: float) -> DerivedMetrics:
    indices = list(snapshot.cell_voltages)
    voltages = np.fromiter(snapshot.cell_voltages.values(), dtype=float, count=len(indices))
    if voltages.size == 0:
        raise ValueError("Snapshot carries no cell voltages")

    # argmin/argmax return the first occurrence, so ties keep cell order.
    lo = int(np.argmin(voltages))
    hi = int(np.argmax(voltages))
    min_cell = CellReading(indices[lo], float(voltages[lo]))
    max_cell = CellReading(indices[hi], float(voltages[hi]))

    setting = snapshot.pack_capacity_setting
    available = setting / 100 * snapshot.capacity_percent

    return DerivedMetrics(
        average_cell_voltage=float(np.mean(voltages)),
        min_cell=min_cell,
        max_cell=max_cell,
        cell_voltage_spread=max_cell.voltage - min_cell.voltage,
        smoothed_current=smoothed_current,
        available_capacity=available,
        estimated_time_remaining=_time_remaining(
            setting, available, smoothed_current, snapshot.is_charging
        ),
        charge_rate=round_half_away(smoothed_current / setting, 2) if setting else 0.0,
    )


def _time_remaining(
    setting: float, available: float, smoothed_current: float, charging: bool
) -> Optional[float]:
    if smoothed_current <= 0:
        return None
    if charging:
        return (setting - available) / smoothed_current
    return available / smoothed_current


def round_half_away(value: float, places: int = 2) -> float:
    """Round with ties going away from zero (0.125 -> 0.13, -0.125 -> -0.13)."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))
