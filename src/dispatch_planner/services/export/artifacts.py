"""Renderers for approved plan artifacts: an Excel workbook and a plain-text manifest."""

from __future__ import annotations

import io
from typing import Iterable

from openpyxl import Workbook
from openpyxl.styles import Font

from ...models.domain import Route, RoutePlan

SPREADSHEET_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MANIFEST_MEDIA_TYPE = "text/plain"

PLAN_COLUMNS = [
    "Route ID",
    "Stop #",
    "Delivery ID",
    "Customer",
    "Executive",
    "Contact",
    "Location",
    "Packages",
    "Distance (km)",
    "Time (min)",
    "Map Link",
]


def spreadsheet_name(plan: RoutePlan) -> str:
    return f"route_plan_{plan.key.slug}.xlsx"


def manifest_name(plan: RoutePlan) -> str:
    return f"route_plan_{plan.key.slug}.txt"


def _executive_label(route: Route) -> str:
    executive = route.executive
    return f"{executive.name} ({executive.contact})" if executive.contact else executive.name


def _format_metric(value: float | None, scale: float = 1.0, digits: int = 2) -> str:
    if value is None:
        return "-"
    return f"{value * scale:.{digits}f}"


def _plan_rows(plan: RoutePlan) -> Iterable[list]:
    for route in plan.routes:
        for position, stop in enumerate(route.stops, start=1):
            yield [
                route.route_id,
                position,
                stop.delivery_id,
                stop.customer_name,
                route.executive.name,
                route.executive.contact or "",
                stop.address,
                stop.packages,
                None,
                None,
                stop.map_link or "",
            ]
        yield [
            route.route_id,
            len(route.stops) + 1,
            "",
            "Return to Hub",
            route.executive.name,
            route.executive.contact or "",
            "",
            None,
            route.total_distance_km,
            round(route.estimated_time_hours * 60, 1) if route.estimated_time_hours is not None else None,
            "",
        ]


def render_spreadsheet(plan: RoutePlan) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Route Plan"
    sheet.append(PLAN_COLUMNS)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in _plan_rows(plan):
        sheet.append(row)
    sheet.freeze_panes = "A2"

    summary = workbook.create_sheet("Summary")
    summary.append(["Delivery date", plan.key.delivery_date.isoformat()])
    summary.append(["Delivery session", plan.key.delivery_session.value])
    summary.append(["Drivers", plan.num_drivers])
    summary.append(["Deliveries", plan.total_deliveries])
    summary.append(["Within time constraint", "yes" if plan.within_time_constraint else "no"])
    if plan.comparison:
        summary.append(["AI distance (km)", plan.comparison.ai_distance_km])
        summary.append(["AI time (h)", plan.comparison.ai_time_hours])
        summary.append(["Baseline distance (km)", plan.comparison.baseline_distance_km])
        summary.append(["Baseline time (h)", plan.comparison.baseline_time_hours])
        summary.append(["Recommendation", plan.comparison.recommendation or ""])
    for warning in plan.warnings:
        summary.append(["Warning", warning])

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def render_manifest(plan: RoutePlan) -> str:
    lines = [
        f"ROUTE PLAN {plan.key.delivery_date.isoformat()} {plan.key.delivery_session.value.upper()}",
        f"Drivers: {plan.num_drivers}  Deliveries: {plan.total_deliveries}",
    ]
    for warning in plan.warnings:
        lines.append(f"WARNING: {warning}")
    for route in plan.routes:
        lines.append("")
        lines.append(f"== {route.route_id} | {_executive_label(route)}")
        stale = " (needs refresh)" if route.metrics_stale else ""
        lines.append(
            f"   {len(route.stops)} stops, {_format_metric(route.total_distance_km)} km, "
            f"{_format_metric(route.estimated_time_hours, 60, 0)} min{stale}"
        )
        for position, stop in enumerate(route.stops, start=1):
            location = f" - {stop.address}" if stop.address else ""
            lines.append(f"{position:>3}. {stop.customer_name} [{stop.delivery_id}] x{stop.packages}{location}")
            if stop.map_link:
                lines.append(f"     {stop.map_link}")
        lines.append(f"{len(route.stops) + 1:>3}. Return to Hub")
    return "\n".join(lines) + "\n"
