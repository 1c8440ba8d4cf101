"""Transient cart used to build a new order or edit an existing one."""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from schemas.order_management import OrderCreate, OrderItemCreate, OrderUpdate, SelectedOption
from services import pricing
from services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    menu_item_id: Optional[int]
    name: str
    base_price: float
    price: float
    quantity: int = 1
    selected_options: List[SelectedOption] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)  # local only, never persisted

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    def to_item(self) -> OrderItemCreate:
        return OrderItemCreate(
            menu_item_id=self.menu_item_id,
            name=self.name,
            quantity=self.quantity,
            price=self.price,
            selected_options=list(self.selected_options),
        )


def _as_quantity(value) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid quantity: {value!r}")
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid quantity: {value!r}")
    if quantity != value and not isinstance(value, str):
        raise ValidationError(f"Invalid quantity: {value!r}")
    return quantity


class Cart:
    def __init__(self, lines: Optional[Iterable[CartLine]] = None):
        self.lines: List[CartLine] = list(lines or [])

    @classmethod
    def from_order(cls, order, menu_items: Iterable = ()) -> "Cart":
        """Edit cart for a persisted order; prices stay at their snapshot."""
        by_id = {m.id: m for m in menu_items}
        lines = []
        for item in order.order_items or []:
            live = by_id.get(item.menu_item_id)
            lines.append(CartLine(
                menu_item_id=item.menu_item_id,
                name=item.name,
                base_price=live.price if live else item.price_at_time,
                price=item.price_at_time,
                quantity=item.quantity,
                selected_options=[
                    o if isinstance(o, SelectedOption) else SelectedOption.model_validate(o)
                    for o in (item.selected_options or [])
                ],
            ))
        return cls(lines)

    def add(self, menu_item, selections: Optional[pricing.Selections] = None, quantity=1) -> CartLine:
        """Validate the option selections and add one line for ``menu_item``."""
        if not menu_item.is_available:
            raise ValidationError(f"'{menu_item.name}' is currently unavailable")
        quantity = max(1, _as_quantity(quantity))
        pricing.validate_selections(menu_item.options, selections)
        line = CartLine(
            menu_item_id=menu_item.id,
            name=menu_item.name,
            base_price=menu_item.price,
            price=pricing.price_item(menu_item, selections),
            quantity=quantity,
            selected_options=pricing.build_selected_options(menu_item.options, selections),
        )
        self.lines.append(line)
        logger.debug(f"Added {menu_item.name} x{quantity} at {line.price}")
        return line

    def get(self, line_id: str) -> CartLine:
        for line in self.lines:
            if line.id == line_id:
                return line
        raise NotFoundError(f"Cart line {line_id} not found")

    def remove(self, line_id: str) -> None:
        self.lines = [line for line in self.lines if line.id != line_id]

    def set_quantity(self, line_id: str, quantity) -> CartLine:
        line = self.get(line_id)
        line.quantity = max(1, _as_quantity(quantity))
        return line

    def change_quantity(self, line_id: str, delta: int) -> CartLine:
        line = self.get(line_id)
        return self.set_quantity(line_id, line.quantity + _as_quantity(delta))

    def clear(self) -> None:
        self.lines = []

    @property
    def total_amount(self) -> float:
        return sum(line.line_total for line in self.lines)

    def __len__(self):
        return len(self.lines)

    def to_items(self) -> List[OrderItemCreate]:
        return [line.to_item() for line in self.lines]

    def to_create(self, order_type="dine_in", table_number=None, special_request=None) -> OrderCreate:
        return OrderCreate(
            order_type=order_type,
            table_number=table_number,
            special_request=special_request,
            items=self.to_items(),
        )

    def to_update(self, **changes) -> OrderUpdate:
        """Full edit payload: header changes plus the whole item set and its total.

        The total is always derived from the lines; a passed ``total_amount`` is ignored.
        """
        changes.pop("total_amount", None)
        return OrderUpdate(items=self.to_items(), total_amount=self.total_amount, **changes)
