from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class OrderStatus(str, Enum):
    ACTIVE = 'active'
    COMPLETE = 'complete'
    CANCELLED = 'cancelled'


class ToolStatus(str, Enum):
    PENDING = 'pending'
    IN_PROGRESS = 'in-progress'
    COMPLETE = 'complete'


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Order(Base):
    __tablename__ = 'orders'

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=func.gen_random_uuid())
    so_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    po_number: Mapped[str | None] = mapped_column(Text)
    customer_name: Mapped[str | None] = mapped_column(Text)
    tool_model: Mapped[str | None] = mapped_column(Text)
    quantity: Mapped[int | None] = mapped_column(Integer)
    order_date: Mapped[date | None] = mapped_column(Date)
    due_date: Mapped[date | None] = mapped_column(Date)
    estimated_ship_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name='order_status', values_callable=_enum_values),
        nullable=False,
        default=OrderStatus.ACTIVE,
        server_default=OrderStatus.ACTIVE.value,
    )
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Tool(Base):
    __tablename__ = 'tools'
    __table_args__ = (UniqueConstraint('order_id', 'tool_number', name='uq_tools_order_tool_number'),)

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=func.gen_random_uuid())
    order_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    tool_number: Mapped[str] = mapped_column(Text, nullable=False)
    serial_number: Mapped[str | None] = mapped_column(Text)
    tool_model: Mapped[str | None] = mapped_column(Text)
    status: Mapped[ToolStatus] = mapped_column(
        SQLEnum(ToolStatus, name='tool_status', values_callable=_enum_values),
        nullable=False,
        default=ToolStatus.PENDING,
        server_default=ToolStatus.PENDING.value,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LineItem(Base):
    __tablename__ = 'line_items'

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=func.gen_random_uuid())
    order_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    part_number: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    location: Mapped[str | None] = mapped_column(Text)
    qty_per_unit: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default='1')
    total_qty_needed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    qty_available: Mapped[int | None] = mapped_column(Integer)
    qty_on_order: Mapped[int | None] = mapped_column(Integer)
    # NULL or empty means the line item applies to every tool on the order.
    tool_ids: Mapped[list[str] | None] = mapped_column(ARRAY(UUID(as_uuid=False)))
    assembly_group: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Pick(Base):
    __tablename__ = 'picks'

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=func.gen_random_uuid())
    line_item_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey('line_items.id', ondelete='CASCADE'), nullable=False
    )
    tool_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey('tools.id', ondelete='CASCADE'), nullable=False)
    qty_picked: Mapped[int] = mapped_column(Integer, nullable=False)
    picked_by: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    picked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    undone_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    undone_by: Mapped[str | None] = mapped_column(Text)


class PickUndo(Base):
    __tablename__ = 'pick_undos'

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=func.gen_random_uuid())
    original_pick_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)
    line_item_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)
    tool_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)
    qty_picked: Mapped[int] = mapped_column(Integer, nullable=False)
    picked_by: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    picked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    part_number: Mapped[str] = mapped_column(Text, nullable=False)
    tool_number: Mapped[str] = mapped_column(Text, nullable=False)
    so_number: Mapped[str] = mapped_column(Text, nullable=False)
    order_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)
    undone_by: Mapped[str] = mapped_column(Text, nullable=False)
    undone_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
