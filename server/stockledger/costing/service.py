from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.errors import CostLayerShortfallError
from stockledger.models import CostLayer, Item, LayerConsumption, LayerDraw
from stockledger.utils.money import quantize_money


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FifoResult:
    requested: int
    total_cost: Decimal
    draws: tuple[LayerDraw, ...] = field(default_factory=tuple)
    shortfall: int = 0

    @property
    def quantity_costed(self) -> int:
        return self.requested - self.shortfall


def find_available_layers(db: Session, item_id: int, location_id: int | None = None) -> list[CostLayer]:
    query = db.query(CostLayer).filter(CostLayer.item_id == item_id, CostLayer.quantity_remaining > 0)
    if location_id is not None:
        query = query.filter(CostLayer.location_id == location_id)
    return query.order_by(CostLayer.receipt_date.asc(), CostLayer.id.asc()).all()


def create_cost_layer(
    db: Session,
    *,
    item: Item,
    quantity: int,
    unit_cost: Decimal | float | int | str | None,
    layer_type: str = "RECEIPT",
    location_id: int | None = None,
    receipt_line_id: int | None = None,
    source_type: str | None = None,
    source_id: int | None = None,
    receipt_date: datetime | None = None,
) -> CostLayer:
    layer = CostLayer(
        item_id=item.id,
        item_receipt_line_id=receipt_line_id,
        location_id=location_id,
        layer_type=layer_type,
        quantity_received=quantity,
        quantity_remaining=quantity,
        unit_cost=quantize_money(unit_cost) or Decimal("0.00"),
        receipt_date=receipt_date or datetime.utcnow(),
        source_type=source_type,
        source_id=source_id,
    )
    db.add(layer)
    db.flush()
    logger.debug(
        "Cost layer created: item_id=%s layer_id=%s qty=%s unit_cost=%s type=%s",
        item.id,
        layer.id,
        quantity,
        layer.unit_cost,
        layer_type,
    )
    return layer


def consume_fifo(
    db: Session,
    *,
    item: Item,
    quantity: int,
    location_id: int | None = None,
    transaction_type: str,
    transaction_id: int | None = None,
) -> FifoResult:
    """Draw ``quantity`` units from the item's oldest layers first.

    Uncovered quantity is reported as ``shortfall``. With the ``fail`` policy a
    shortfall raises before any layer is touched.
    """
    if quantity <= 0:
        return FifoResult(requested=0, total_cost=Decimal("0.00"))

    layers = find_available_layers(db, item.id, location_id)
    available = sum(layer.quantity_remaining for layer in layers)
    shortfall = max(0, quantity - available)
    if shortfall and settings.COST_SHORTFALL_POLICY == "fail":
        raise CostLayerShortfallError(item.id, shortfall)

    remaining = quantity
    total = Decimal("0")
    draws: list[LayerDraw] = []
    for layer in layers:
        if remaining <= 0:
            break
        draw = layer.consume(remaining)
        if not draw.consumed:
            continue
        remaining -= draw.consumed
        total += draw.cost
        draws.append(draw)
        db.add(
            LayerConsumption(
                cost_layer_id=layer.id,
                transaction_type=transaction_type,
                transaction_id=transaction_id,
                quantity_consumed=draw.consumed,
                unit_cost=draw.unit_cost,
                total_cost=quantize_money(draw.cost),
            )
        )

    if shortfall:
        logger.warning(
            "Insufficient cost layers: item_id=%s requested=%s uncosted=%s",
            item.id,
            quantity,
            shortfall,
        )

    return FifoResult(requested=quantity, total_cost=quantize_money(total), draws=tuple(draws), shortfall=shortfall)


def link_consumptions(db: Session, *, transaction_type: str, transaction_id: int | None, item_event_id: int) -> None:
    """Attach unlinked consumption rows of a transaction to the item event that caused them."""
    pending = (
        db.query(LayerConsumption)
        .filter(
            LayerConsumption.transaction_type == transaction_type,
            LayerConsumption.transaction_id == transaction_id,
            LayerConsumption.item_event_id.is_(None),
        )
        .all()
    )
    for row in pending:
        row.item_event_id = item_event_id


def calculate_item_valuation(db: Session, item_id: int) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(CostLayer.quantity_remaining * CostLayer.unit_cost), 0))
        .filter(CostLayer.item_id == item_id, CostLayer.quantity_remaining > 0)
        .scalar()
    )
    return quantize_money(total or 0)


def calculate_total_inventory_valuation(db: Session) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(CostLayer.quantity_remaining * CostLayer.unit_cost), 0))
        .filter(CostLayer.quantity_remaining > 0)
        .scalar()
    )
    return quantize_money(total or 0)


def get_average_cost(db: Session, item_id: int, location_id: int | None = None) -> Decimal | None:
    layers = find_available_layers(db, item_id, location_id)
    units = sum(layer.quantity_remaining for layer in layers)
    if not units:
        return None
    value = sum((layer.total_cost for layer in layers), Decimal("0"))
    return quantize_money(value / units)


def get_layer_summary(db: Session, item_id: int) -> list[CostLayer]:
    return (
        db.query(CostLayer)
        .filter(CostLayer.item_id == item_id)
        .order_by(CostLayer.receipt_date.asc(), CostLayer.id.asc())
        .all()
    )
