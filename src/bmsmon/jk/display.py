"""Console rendering of decoded reports."""
from __future__ import annotations

from typing import List, Optional

from .processing import Report


def format_duration(hours: Optional[float]) -> str:
    if hours is None:
        return "n/a"
    total_minutes = int(round(hours * 60))
    return f"{total_minutes // 60}h {total_minutes % 60:02d}m"


def format_report(report: Report) -> List[str]:
    snap = report.snapshot
    metrics = report.metrics
    lines: List[str] = [f"cell count: {snap.cell_count}"]
    for index, voltage in snap.cell_voltages.items():
        lines.append(f"cell {index}: {voltage:0.3f} V")
    lines.append(
        f"avg cell: {metrics.average_cell_voltage:0.4f} V | "
        f"min: cell {metrics.min_cell.index} @ {metrics.min_cell.voltage:0.3f} V | "
        f"max: cell {metrics.max_cell.index} @ {metrics.max_cell.voltage:0.3f} V | "
        f"spread: {metrics.cell_voltage_spread * 1000:0.0f} mV"
    )
    # Temperatures are shown exactly as the device reports them.
    lines.append(
        f"mos temp: {snap.mos_temperature} C | t1: {snap.probe_temperature_1} C | "
        f"t2: {snap.probe_temperature_2} C"
    )
    lines.append(f"pack voltage: {snap.pack_voltage:0.2f} V")
    direction = "charging" if snap.is_charging else "discharging"
    lines.append(
        f"current: {snap.current_magnitude:0.2f} A ({direction}) | "
        f"smoothed: {metrics.smoothed_current:0.2f} A"
    )
    lines.append(f"capacity: {snap.capacity_percent} %")
    lines.append(f"pack capacity: {snap.pack_capacity_setting:0.2f} Ah")
    lines.append(f"available capacity: {metrics.available_capacity:0.1f} Ah")
    target = "full" if snap.is_charging else "empty"
    lines.append(f"time to {target}: {format_duration(metrics.estimated_time_remaining)}")
    lines.append(f"charge rate: {metrics.charge_rate:0.2f} C")
    lines.append(f"warning: {'YES' if snap.is_warning else 'no'}")
    return lines
