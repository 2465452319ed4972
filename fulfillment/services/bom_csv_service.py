from __future__ import annotations

import csv
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from fulfillment.services.reconciliation_service import (
    LineItemSnapshot,
    OrderSnapshot,
    line_items_by_part,
)

PURCHASED_PART_TYPE = 'PUR'


@dataclass(frozen=True)
class BomQtyMismatch:
    part_number: str
    bom_qty: int
    db_qty: int | None
    issue: str


@dataclass(frozen=True)
class BomOverPick:
    part_number: str
    bom_qty: int
    picked: int

    @property
    def over_by(self) -> int:
        return self.picked - self.bom_qty


@dataclass(frozen=True)
class ToolBomAudit:
    tool_number: str
    parts_checked: int
    tool_missing: bool = False
    mismatches: tuple[BomQtyMismatch, ...] = ()
    missing_from_db: tuple[tuple[str, int], ...] = ()
    extra_in_db: tuple[tuple[str, int], ...] = ()
    over_picked: tuple[BomOverPick, ...] = ()

    @property
    def has_issues(self) -> bool:
        return bool(
            self.tool_missing or self.mismatches or self.missing_from_db or self.extra_in_db or self.over_picked
        )


def _pick_quantity(raw: float) -> int:
    # Fractional material (adhesive by weight, wire by length) is still one unit to pick.
    if raw <= 0:
        return 0
    return max(1, math.ceil(raw))


def parse_bom_rows(rows: Iterable[list[str]]) -> dict[str, int]:
    parts: dict[str, int] = {}
    for row in rows:
        if len(row) < 4:
            continue
        try:
            int(row[0].strip())
        except ValueError:
            continue

        part_number = row[1].strip()
        part_type = row[2].strip()
        try:
            raw_qty = float(row[3].strip())
        except ValueError:
            continue
        if not part_number or not math.isfinite(raw_qty):
            continue
        if part_type != PURCHASED_PART_TYPE:
            continue
        parts[part_number] = parts.get(part_number, 0) + _pick_quantity(raw_qty)
    return parts


def parse_bom_csv(source: str | Path | Iterable[str]) -> dict[str, int]:
    """Per-tool purchased-part quantities from a full BOM export.

    ``source`` is either a file path or an iterable of CSV lines.
    """
    if isinstance(source, (str, Path)):
        with open(source, newline='', encoding='utf-8-sig') as handle:
            return parse_bom_rows(csv.reader(handle))
    return parse_bom_rows(csv.reader(source))


def expected_totals_from_boms(per_tool_boms: Iterable[Mapping[str, int]]) -> dict[str, int]:
    totals: dict[str, int] = {}
    for bom in per_tool_boms:
        for part_number, qty in bom.items():
            totals[part_number] = totals.get(part_number, 0) + qty
    return totals


def _applies_to_tool(line_item: LineItemSnapshot, tool_id: str) -> bool:
    return line_item.is_order_wide or tool_id in (line_item.tool_ids or ())


def audit_tool_against_bom(order: OrderSnapshot, tool_number: str, bom: Mapping[str, int]) -> ToolBomAudit:
    tool = next((candidate for candidate in order.tools if candidate.tool_number == tool_number), None)
    if tool is None:
        return ToolBomAudit(tool_number=tool_number, parts_checked=0, tool_missing=True)

    by_part = line_items_by_part(order)
    part_by_line_item = {item.id: item.part_number for item in order.line_items}

    picked_for_tool: dict[str, int] = {}
    for pick in order.picks:
        if not pick.is_active or pick.tool_id != tool.id:
            continue
        part_number = part_by_line_item.get(pick.line_item_id)
        if part_number is None:
            continue
        picked_for_tool[part_number] = picked_for_tool.get(part_number, 0) + pick.qty_picked

    mismatches: list[BomQtyMismatch] = []
    missing: list[tuple[str, int]] = []
    over_picked: list[BomOverPick] = []

    for part_number, bom_qty in bom.items():
        items = by_part.get(part_number)
        if not items:
            missing.append((part_number, bom_qty))
            continue

        line_item = next((item for item in items if _applies_to_tool(item, tool.id)), None)
        if line_item is None:
            mismatches.append(
                BomQtyMismatch(
                    part_number=part_number,
                    bom_qty=bom_qty,
                    db_qty=None,
                    issue=f"tool {tool_number} not in any line item's tool_ids",
                )
            )
            continue

        if line_item.qty_per_unit != bom_qty:
            mismatches.append(
                BomQtyMismatch(part_number=part_number, bom_qty=bom_qty, db_qty=line_item.qty_per_unit, issue='qty mismatch')
            )

        picked = picked_for_tool.get(part_number, 0)
        if picked > bom_qty:
            over_picked.append(BomOverPick(part_number=part_number, bom_qty=bom_qty, picked=picked))

    extra = [
        (item.part_number, item.qty_per_unit)
        for item in order.line_items
        if item.part_number not in bom and _applies_to_tool(item, tool.id)
    ]

    return ToolBomAudit(
        tool_number=tool_number,
        parts_checked=len(bom),
        mismatches=tuple(mismatches),
        missing_from_db=tuple(missing),
        extra_in_db=tuple(extra),
        over_picked=tuple(over_picked),
    )
