"""Scenario line item export — CSV and Excel.

Flattens scenario items into ordered rows. Identity columns are always
present; baseline, delta and cost column groups are optional. Pure read:
nothing here touches the workspace.
"""

import csv
import io
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font

from src.models.scenario import PlanScenario, ScenarioItem


class ExportFormat(StrEnum):
    CSV = "csv"
    XLSX = "xlsx"


MEDIA_TYPES: dict[ExportFormat, str] = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


@dataclass(frozen=True)
class ExportOptions:
    include_baseline: bool = True
    include_deltas: bool = True
    include_costs: bool = True
    only_cut_items: bool = False


def export_rows(items: Sequence[ScenarioItem], options: ExportOptions) -> list[dict]:
    """Flatten items into export rows, in the order given."""
    rows: list[dict] = []
    for item in items:
        if options.only_cut_items and not item.is_cut:
            continue

        row: dict = {
            "Position": item.position + 1,
            "Course ID": item.course_id or "",
            "Course Name": item.course_name or "",
            "Entity": item.entity_name or item.entity_id or "",
            "Category": item.category_name or item.category_id or "",
            "Priority Band": item.priority_band.value,
            "Protected": "Yes" if item.is_protected else "No",
            "Abroad": "Yes" if item.is_abroad else "No",
        }
        if options.include_baseline:
            row["Baseline Participants"] = item.baseline_volume
            row["Baseline Sessions"] = item.baseline_sessions
            if options.include_costs:
                row["Baseline Cost"] = round(item.baseline_cost, 2)
        row["Scenario Participants"] = item.scenario_volume
        row["Scenario Sessions"] = item.scenario_sessions
        if options.include_costs:
            row["Cost per Participant"] = (
                round(item.baseline_cost_per_participant, 2)
                if item.baseline_cost_per_participant is not None else ""
            )
            row["Scenario Cost"] = round(item.scenario_cost, 2)
        if options.include_deltas:
            row["Participants Delta"] = item.volume_delta
            if options.include_costs:
                row["Cost Delta"] = round(item.cost_delta, 2)
        row["Cut"] = "Yes" if item.is_cut else "No"
        row["Locally Adjusted"] = "Yes" if item.is_locally_adjusted else "No"
        row["Adjustment Reason"] = item.local_adjustment_reason or ""
        rows.append(row)
    return rows


def export_headers(options: ExportOptions) -> list[str]:
    """Column order for a given option set. Matches the keys of export_rows."""
    headers = [
        "Position", "Course ID", "Course Name", "Entity", "Category",
        "Priority Band", "Protected", "Abroad",
    ]
    if options.include_baseline:
        headers += ["Baseline Participants", "Baseline Sessions"]
        if options.include_costs:
            headers.append("Baseline Cost")
    headers += ["Scenario Participants", "Scenario Sessions"]
    if options.include_costs:
        headers += ["Cost per Participant", "Scenario Cost"]
    if options.include_deltas:
        headers.append("Participants Delta")
        if options.include_costs:
            headers.append("Cost Delta")
    headers += ["Cut", "Locally Adjusted", "Adjustment Reason"]
    return headers


def to_csv(rows: list[dict], headers: list[str]) -> bytes:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=headers, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue().encode("utf-8")


def _cell_value(value):
    # Worksheets reject ASCII control characters.
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


class ScenarioExcelExporter:
    """Workbook with an Items sheet and a Scenario Metadata sheet."""

    def export(self, scenario: PlanScenario, rows: list[dict], headers: list[str],
               options: ExportOptions) -> bytes:
        wb = Workbook()
        # Remove default sheet
        wb.remove(wb.active)

        self._write_items(wb, rows, headers)
        self._write_metadata(wb, scenario, options)

        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()

    def _write_items(self, wb: Workbook, rows: list[dict], headers: list[str]) -> None:
        ws = wb.create_sheet("Items")
        for col, h in enumerate(headers, 1):
            ws.cell(row=1, column=col, value=h).font = Font(bold=True)

        for row_idx, row in enumerate(rows, 2):
            for col, h in enumerate(headers, 1):
                ws.cell(row=row_idx, column=col, value=_cell_value(row.get(h)))
        ws.freeze_panes = "A2"

    def _write_metadata(self, wb: Workbook, scenario: PlanScenario,
                        options: ExportOptions) -> None:
        ws = wb.create_sheet("Scenario Metadata")
        metadata = [
            ("Scenario ID", scenario.scenario_id),
            ("Scenario Name", scenario.name),
            ("Status", scenario.status.value),
            ("Basis Plan ID", scenario.basis_plan_id),
            ("Basis Plan Version", scenario.basis_plan_version),
            ("Baseline Total Cost", scenario.baseline_total_cost),
            ("Scenario Total Cost", scenario.scenario_total_cost),
            ("Baseline Participants", scenario.baseline_total_participants),
            ("Scenario Participants", scenario.scenario_total_participants),
            ("Budget Type", scenario.global_budget_type),
            ("Budget Value", scenario.global_budget_value),
            ("Last Recalculation", scenario.last_recalculation_at),
            ("Only Cut Items", options.only_cut_items),
        ]
        for row_idx, (label, value) in enumerate(metadata, 1):
            ws.cell(row=row_idx, column=1, value=label)
            ws.cell(row=row_idx, column=2,
                    value=_cell_value(str(value)) if value is not None else "")
