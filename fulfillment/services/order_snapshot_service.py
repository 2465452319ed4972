from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment.models import LineItem, Order, OrderStatus, Pick, Tool
from fulfillment.services.reconciliation_service import (
    LineItemSnapshot,
    OrderSnapshot,
    PickSnapshot,
    ToolSnapshot,
)


def _enum_value(value) -> str | None:
    if value is None:
        return None
    return getattr(value, 'value', value)


def tool_snapshot(row) -> ToolSnapshot:
    return ToolSnapshot(
        id=str(row.id),
        tool_number=row.tool_number,
        tool_model=row.tool_model,
        status=_enum_value(row.status),
    )


def line_item_snapshot(row) -> LineItemSnapshot:
    return LineItemSnapshot(
        id=str(row.id),
        part_number=row.part_number,
        qty_per_unit=int(row.qty_per_unit or 0),
        total_qty_needed=int(row.total_qty_needed or 0),
        tool_ids=tuple(str(tool_id) for tool_id in row.tool_ids) if row.tool_ids else None,
        qty_available=row.qty_available,
        qty_on_order=row.qty_on_order,
        description=row.description,
        assembly_group=row.assembly_group,
    )


def pick_snapshot(row) -> PickSnapshot:
    return PickSnapshot(
        id=str(row.id),
        line_item_id=str(row.line_item_id),
        tool_id=str(row.tool_id),
        qty_picked=int(row.qty_picked),
        picked_by=row.picked_by,
        picked_at=row.picked_at,
        undone_at=row.undone_at,
    )


def build_order_snapshot(order, tools: Iterable, line_items: Iterable, picks: Iterable) -> OrderSnapshot:
    return OrderSnapshot(
        id=str(order.id),
        so_number=order.so_number,
        customer_name=order.customer_name,
        tool_model=order.tool_model,
        quantity=order.quantity,
        status=_enum_value(order.status),
        tools=tuple(tool_snapshot(row) for row in tools),
        line_items=tuple(line_item_snapshot(row) for row in line_items),
        picks=tuple(pick_snapshot(row) for row in picks),
    )


def get_order_by_so_number(db: Session, so_number: str) -> Order | None:
    return db.execute(select(Order).where(Order.so_number == so_number)).scalar_one_or_none()


def load_order_snapshot(db: Session, so_number: str, *, part_number: str | None = None) -> OrderSnapshot | None:
    order = get_order_by_so_number(db, so_number)
    if order is None:
        return None
    return snapshot_for_order(db, order, part_number=part_number)


def snapshot_for_order(db: Session, order: Order, *, part_number: str | None = None) -> OrderSnapshot:
    """Load the children of an already-fetched order row and snapshot them."""
    tools = db.execute(select(Tool).where(Tool.order_id == order.id).order_by(Tool.tool_number.asc())).scalars().all()

    line_item_query = select(LineItem).where(LineItem.order_id == order.id)
    if part_number is not None:
        line_item_query = line_item_query.where(LineItem.part_number == part_number)
    line_items = db.execute(line_item_query.order_by(LineItem.created_at.asc(), LineItem.id.asc())).scalars().all()

    line_item_ids = [row.id for row in line_items]
    picks = []
    if line_item_ids:
        picks = (
            db.execute(select(Pick).where(Pick.line_item_id.in_(line_item_ids)).order_by(Pick.picked_at.asc()))
            .scalars()
            .all()
        )

    return build_order_snapshot(order, tools, line_items, picks)


def load_active_order_snapshots(db: Session) -> list[OrderSnapshot]:
    orders = db.execute(select(Order).where(Order.status == OrderStatus.ACTIVE).order_by(Order.so_number.asc())).scalars().all()
    return [snapshot_for_order(db, order) for order in orders]
