"""
In-memory cart and the checkout that turns it into an order.

A cart lives for one checkout session: it is discarded on success, on a
branch switch and when the screen is left. Nothing here touches the
database except ``Cart.checkout``, which hands the whole order to
``crud.commit_order`` as a single transaction.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Literal, Optional

import stockdesk.db.crud as crud
from stockdesk.db.models import CurrentUser, Order, OrderItem, Product
from stockdesk.utils.config import PAYMENT_METHODS
from stockdesk.utils.errors import BackendError, ValidationError
from stockdesk.utils.logger import get_logger
from stockdesk.utils.pure import fmt_money

_logger = get_logger(__name__)


class CartState(Enum):
    EMPTY = "empty"
    BUILDING = "building"
    READY = "ready"
    COMMITTING = "committing"


@dataclass
class CartLine:
    pid: int
    name: str
    sell_price: float  # may be overridden at the counter
    cost_price: float
    qty: int
    stock: int  # available stock when the line was added

    @property
    def line_total(self) -> float:
        return self.sell_price * self.qty

    @property
    def below_cost(self) -> bool:
        return self.sell_price < self.cost_price


@dataclass(frozen=True)
class CartResult:
    ok: bool
    message: str
    severity: Literal["information", "warning", "error"] = "information"


@dataclass(frozen=True)
class OrderTotals:
    items: tuple
    total: float
    total_cost: float
    total_profit: float
    profit_margin: float


def compute_totals(lines: Iterable[CartLine]) -> OrderTotals:
    """Per-line cost/profit plus the order aggregates; margin is 0 for a zero total."""
    items: List[OrderItem] = []
    total = 0.0
    total_cost = 0.0
    for line in lines:
        revenue = line.sell_price * line.qty
        cost = line.cost_price * line.qty
        total += revenue
        total_cost += cost
        items.append(
            OrderItem(
                pid=line.pid,
                name=line.name,
                qty=line.qty,
                unit_sell=line.sell_price,
                unit_cost=line.cost_price,
                line_cost=cost,
                line_profit=revenue - cost,
            )
        )
    total_profit = total - total_cost
    margin = total_profit / total * 100 if total else 0.0
    return OrderTotals(
        items=tuple(items),
        total=total,
        total_cost=total_cost,
        total_profit=total_profit,
        profit_margin=margin,
    )


class Cart:
    """
    Cart for one branch.

    States: EMPTY -> BUILDING <-> READY -> COMMITTING -> EMPTY | READY.
    BUILDING means there are lines but at least one is priced below cost;
    a failed commit leaves the lines untouched and drops back to READY.
    A completed commit empties the cart and keeps the order in ``last_order``.
    """

    def __init__(self, bid: Optional[int] = None) -> None:
        self.bid = bid
        self._lines: Dict[int, CartLine] = {}
        self._phase: Optional[CartState] = None
        self.last_error: Optional[str] = None
        self.last_order: Optional[Order] = None

    # ---------- derived values ----------

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    @property
    def total(self) -> float:
        return sum(line.sell_price * line.qty for line in self._lines.values())

    @property
    def item_count(self) -> int:
        return sum(line.qty for line in self._lines.values())

    @property
    def below_cost_lines(self) -> List[CartLine]:
        return [line for line in self._lines.values() if line.below_cost]

    @property
    def state(self) -> CartState:
        if self._phase is not None:
            return self._phase
        if not self._lines:
            return CartState.EMPTY
        if self.below_cost_lines:
            return CartState.BUILDING
        return CartState.READY

    def get(self, pid: int) -> Optional[CartLine]:
        return self._lines.get(pid)

    def __len__(self) -> int:
        return len(self._lines)

    # ---------- mutations ----------

    def _editable(self) -> Optional[CartResult]:
        if self._phase is CartState.COMMITTING:
            return CartResult(False, "Checkout in progress.", "warning")
        return None

    def add(self, product: Product) -> CartResult:
        busy = self._editable()
        if busy:
            return busy
        if product.stock <= 0:
            return CartResult(False, "This product is out of stock.", "error")

        line = self._lines.get(product.pid)
        if line is None:
            self._lines[product.pid] = CartLine(
                pid=product.pid,
                name=product.name,
                sell_price=product.sell_price,
                cost_price=product.cost_price,
                qty=1,
                stock=product.stock,
            )
        else:
            if line.qty >= product.stock:
                return CartResult(
                    False,
                    f"Cannot add more than available stock ({product.stock})",
                    "error",
                )
            line.qty += 1
            line.stock = product.stock
        return CartResult(True, f"{product.name} added to cart")

    def remove(self, pid: int) -> CartResult:
        busy = self._editable()
        if busy:
            return busy
        if self._lines.pop(pid, None) is None:
            return CartResult(False, "Item is not in the cart.", "warning")
        return CartResult(True, "Item removed from cart")

    def set_qty(self, pid: int, qty: int) -> CartResult:
        busy = self._editable()
        if busy:
            return busy
        line = self._lines.get(pid)
        if line is None:
            return CartResult(False, "Item is not in the cart.", "warning")
        if qty < 1:
            return self.remove(pid)
        if qty > line.stock:
            return CartResult(False, f"Only {line.stock} items available", "error")
        line.qty = qty
        return CartResult(True, f"Quantity set to {qty}")

    def override_price(self, pid: int, price: float) -> CartResult:
        """Change the unit sell price of one line. Below cost is allowed here but flagged."""
        busy = self._editable()
        if busy:
            return busy
        line = self._lines.get(pid)
        if line is None:
            return CartResult(False, "Item is not in the cart.", "warning")
        if not math.isfinite(price):
            return CartResult(False, "Please enter a valid price", "error")
        if price < 0:
            return CartResult(False, "Price cannot be negative", "error")
        line.sell_price = float(price)
        if line.below_cost:
            return CartResult(
                True, f"Below cost ({fmt_money(line.cost_price)})", "warning"
            )
        return CartResult(True, f"Price set to {fmt_money(line.sell_price)}")

    def clear(self) -> None:
        self._lines.clear()
        self._phase = None

    def switch_branch(self, bid: Optional[int]) -> None:
        """A cart never spans branches; changing branch discards it."""
        if bid != self.bid:
            self.bid = bid
            self.clear()

    def sync_stock(self, products: Iterable[Product]) -> None:
        """Refresh the available-stock snapshot of lines from a new product read."""
        fresh = {p.pid: p.stock for p in products}
        for line in self._lines.values():
            if line.pid in fresh:
                line.stock = fresh[line.pid]

    # ---------- checkout ----------

    def _check_has_lines(self) -> None:
        if self.bid is None:
            raise ValidationError("Branch ID not found for current user.")
        if not self._lines:
            raise ValidationError("Your cart is empty!")

    def _check_prices(self) -> None:
        below = self.below_cost_lines
        if below:
            raise ValidationError(
                f"Cannot checkout: {len(below)} item(s) priced below cost. "
                f"First item: {below[0].name}"
            )

    def check_ready(self) -> None:
        """Everything checkout needs except the customer details."""
        self._check_has_lines()
        self._check_prices()

    def validate_checkout(self, customer_name: str, payment_method: str) -> None:
        """Raise ValidationError for the first unmet checkout precondition."""
        self._check_has_lines()
        if not (customer_name or "").strip():
            raise ValidationError("Please enter customer name")
        self._check_prices()
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method '{payment_method}'.")

    async def checkout(
        self,
        customer_name: str,
        payment_method: str = PAYMENT_METHODS[0],
        viewer: Optional[CurrentUser] = None,
    ) -> Order:
        """
        Commit the cart as one order.

        On success the cart is emptied and the order returned. On failure the
        lines are kept as they were and the error is re-raised, so the same
        cart can be submitted again.
        """
        if self._phase is CartState.COMMITTING:
            raise ValidationError("Checkout in progress.")
        self.validate_checkout(customer_name, payment_method)

        totals = compute_totals(self._lines.values())
        self._phase = CartState.COMMITTING
        self.last_error = None
        try:
            order = await crud.commit_order(
                bid=self.bid,
                uid=viewer.uid if viewer else None,
                customer_name=customer_name.strip(),
                payment_method=payment_method,
                items=totals.items,
                total=totals.total,
                total_cost=totals.total_cost,
                total_profit=totals.total_profit,
                profit_margin=totals.profit_margin,
            )
        except BackendError as e:
            self._phase = None
            self.last_error = e.message
            _logger.warning(f"Checkout for branch {self.bid} failed: {e.message}")
            raise
        except Exception as e:
            self._phase = None
            self.last_error = "Checkout failed. Please try again."
            _logger.exception(f"Checkout for branch {self.bid} failed.")
            raise BackendError(self.last_error) from e

        self._lines.clear()
        self._phase = None
        self.last_order = order
        return order
