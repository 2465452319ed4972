from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

SHARED_TOOLS_LABEL = 'ALL (shared)'


class DriftStatus(str, Enum):
    OK = 'OK'
    WRONG_TOTAL = 'WRONG_TOTAL'
    STILL_SPLIT = 'STILL_SPLIT'


@dataclass(frozen=True)
class ToolSnapshot:
    id: str
    tool_number: str
    tool_model: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class LineItemSnapshot:
    id: str
    part_number: str
    qty_per_unit: int
    total_qty_needed: int
    tool_ids: tuple[str, ...] | None = None
    qty_available: int | None = None
    qty_on_order: int | None = None
    description: str | None = None
    assembly_group: str | None = None

    @property
    def is_order_wide(self) -> bool:
        return not self.tool_ids


@dataclass(frozen=True)
class PickSnapshot:
    id: str
    line_item_id: str
    tool_id: str
    qty_picked: int
    picked_by: str | None = None
    picked_at: datetime | None = None
    undone_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.undone_at is None


@dataclass(frozen=True)
class OrderSnapshot:
    id: str
    so_number: str
    customer_name: str | None = None
    tool_model: str | None = None
    quantity: int | None = None
    status: str | None = None
    tools: tuple[ToolSnapshot, ...] = ()
    line_items: tuple[LineItemSnapshot, ...] = ()
    picks: tuple[PickSnapshot, ...] = ()


@dataclass(frozen=True)
class LineItemStatus:
    line_item_id: str
    part_number: str
    total_needed: int
    total_picked: int
    remaining: int
    is_complete: bool

    @property
    def is_over_picked(self) -> bool:
        return self.remaining < 0


@dataclass(frozen=True)
class PartAggregate:
    part_number: str
    total_needed: int
    total_picked: int
    remaining: int
    line_item_count: int
    line_item_ids: tuple[str, ...]
    expected_total: int | None = None

    @property
    def is_split(self) -> bool:
        return self.line_item_count > 1

    @property
    def matches_expected(self) -> bool | None:
        if self.expected_total is None:
            return None
        return self.total_needed == self.expected_total


@dataclass(frozen=True)
class PartDrift:
    part_number: str
    db_total: int
    expected_total: int | None
    line_item_count: int
    statuses: tuple[DriftStatus, ...] = field(default=(DriftStatus.OK,))

    @property
    def is_ok(self) -> bool:
        return self.statuses == (DriftStatus.OK,)

    @property
    def difference(self) -> int | None:
        if self.expected_total is None:
            return None
        return self.db_total - self.expected_total


@dataclass(frozen=True)
class OrderProgress:
    so_number: str
    line_item_count: int
    complete_line_item_count: int
    total_needed: int
    total_picked: int

    @property
    def progress_percent(self) -> int:
        if self.line_item_count == 0:
            return 0
        return round(self.complete_line_item_count * 100 / self.line_item_count)


def _active_picks(picks: Iterable[PickSnapshot]) -> list[PickSnapshot]:
    return [pick for pick in picks if pick.is_active]


def picked_by_line_item(picks: Iterable[PickSnapshot]) -> dict[str, int]:
    totals: dict[str, int] = defaultdict(int)
    for pick in _active_picks(picks):
        totals[pick.line_item_id] += pick.qty_picked
    return dict(totals)


def compute_line_item_status(line_item: LineItemSnapshot, picks: Iterable[PickSnapshot] | None) -> LineItemStatus:
    total_picked = sum(pick.qty_picked for pick in _active_picks(picks or ()) if pick.line_item_id == line_item.id)
    # Over-picks stay negative so audits can report them.
    remaining = line_item.total_qty_needed - total_picked
    return LineItemStatus(
        line_item_id=line_item.id,
        part_number=line_item.part_number,
        total_needed=line_item.total_qty_needed,
        total_picked=total_picked,
        remaining=remaining,
        is_complete=remaining <= 0,
    )


def resolve_applicable_tools(line_item: LineItemSnapshot, tools: Iterable[ToolSnapshot]) -> tuple[ToolSnapshot, ...]:
    tools = tuple(tools)
    if line_item.is_order_wide:
        return tools
    wanted = set(line_item.tool_ids or ())
    return tuple(tool for tool in tools if tool.id in wanted)


def applicable_tool_count(line_item: LineItemSnapshot, tools: Iterable[ToolSnapshot]) -> int:
    if line_item.is_order_wide:
        return len(tuple(tools))
    return len(line_item.tool_ids or ())


def tool_display_name(tool_id: str, tools_by_id: Mapping[str, ToolSnapshot]) -> str:
    tool = tools_by_id.get(tool_id)
    return tool.tool_number if tool else tool_id


def tool_display_names(line_item: LineItemSnapshot, tools: Iterable[ToolSnapshot]) -> list[str]:
    if line_item.is_order_wide:
        return [SHARED_TOOLS_LABEL]
    tools_by_id = {tool.id: tool for tool in tools}
    return [tool_display_name(tool_id, tools_by_id) for tool_id in line_item.tool_ids or ()]


def line_items_by_part(order: OrderSnapshot) -> dict[str, list[LineItemSnapshot]]:
    grouped: dict[str, list[LineItemSnapshot]] = defaultdict(list)
    for line_item in order.line_items:
        grouped[line_item.part_number].append(line_item)
    return dict(grouped)


def aggregate_by_part(
    order: OrderSnapshot | None,
    expected_totals: Mapping[str, int] | None = None,
) -> dict[str, PartAggregate]:
    if order is None:
        return {}

    picked = picked_by_line_item(order.picks)
    expected_totals = expected_totals or {}

    aggregates: dict[str, PartAggregate] = {}
    for part_number, items in line_items_by_part(order).items():
        total_needed = sum(item.total_qty_needed for item in items)
        total_picked = sum(picked.get(item.id, 0) for item in items)
        aggregates[part_number] = PartAggregate(
            part_number=part_number,
            total_needed=total_needed,
            total_picked=total_picked,
            remaining=total_needed - total_picked,
            line_item_count=len(items),
            line_item_ids=tuple(item.id for item in items),
            expected_total=expected_totals.get(part_number),
        )
    return aggregates


def detect_drift(order: OrderSnapshot | None, expected_totals: Mapping[str, int]) -> list[PartDrift]:
    for part_number, expected in expected_totals.items():
        if expected < 0:
            raise ValueError(f'Expected total for part {part_number} cannot be negative')

    aggregates = aggregate_by_part(order, expected_totals)
    drifts: list[PartDrift] = []
    for part_number in sorted(set(aggregates) | set(expected_totals)):
        aggregate = aggregates.get(part_number)
        db_total = aggregate.total_needed if aggregate else 0
        line_item_count = aggregate.line_item_count if aggregate else 0
        expected = expected_totals.get(part_number)

        statuses: list[DriftStatus] = []
        if expected is not None and db_total != expected:
            statuses.append(DriftStatus.WRONG_TOTAL)
        if line_item_count > 1:
            statuses.append(DriftStatus.STILL_SPLIT)

        drifts.append(
            PartDrift(
                part_number=part_number,
                db_total=db_total,
                expected_total=expected,
                line_item_count=line_item_count,
                statuses=tuple(statuses) or (DriftStatus.OK,),
            )
        )
    return drifts


def summarize_order(order: OrderSnapshot) -> OrderProgress:
    statuses = [compute_line_item_status(item, order.picks) for item in order.line_items]
    return OrderProgress(
        so_number=order.so_number,
        line_item_count=len(statuses),
        complete_line_item_count=sum(1 for status in statuses if status.is_complete),
        total_needed=sum(status.total_needed for status in statuses),
        total_picked=sum(status.total_picked for status in statuses),
    )
