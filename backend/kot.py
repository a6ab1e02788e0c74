"""
KOT (Kitchen Order Ticket): печать тикета заказа на станцию кухни.

Настоящего принт-сервера нет: "печать" - это запись в лог и событие
kot.printed в Redis, которое может забрать внешний агент печати.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

import models
from domain import utc_now
from redis_client import redis_client

logger = logging.getLogger(__name__)


@dataclass
class KotLine:
    item_id: int
    name: str
    quantity: int
    status: str
    special_instructions: Optional[str] = None


@dataclass
class KotTicket:
    order_id: int
    table_number: int
    section: Optional[str]
    printer_ip: Optional[str]
    printed_at: datetime
    lines: List[KotLine] = field(default_factory=list)
    customer_name: Optional[str] = None


def build_kot(order: models.Order, section: Optional[str] = None,
              printer_ip: Optional[str] = None, now: Optional[datetime] = None) -> KotTicket:
    items = [item for item in order.items if section is None or item.menu_item.section == section]
    return KotTicket(
        order_id=order.id,
        table_number=order.table_number,
        section=section,
        printer_ip=printer_ip,
        printed_at=now or utc_now(),
        customer_name=order.customer_name,
        lines=[
            KotLine(
                item_id=item.id,
                name=item.menu_item.name,
                quantity=item.quantity,
                status=item.status,
                special_instructions=item.special_instructions,
            )
            for item in items
        ],
    )


def print_kot(db: Session, order: models.Order, section: Optional[str] = None,
              now: Optional[datetime] = None) -> KotTicket:
    printer_ip = None
    if section:
        station = db.query(models.KitchenSection).filter(models.KitchenSection.id == section).first()
        printer_ip = station.printer_ip if station else None

    ticket = build_kot(order, section=section, printer_ip=printer_ip, now=now)
    logger.info(
        f"KOT printed: order {order.id}, table {order.table_number}, "
        f"{len(ticket.lines)} items{f' for {section} section' if section else ''}"
    )
    redis_client.publish_event("kot.printed", {
        "order_id": ticket.order_id,
        "table_number": ticket.table_number,
        "section": section,
        "printer_ip": printer_ip,
        "items": len(ticket.lines),
    })
    return ticket
