from typing import List, Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, Select

import stockdesk.db.crud as crud
from stockdesk.db.models import Branch, Product
from stockdesk.utils.errors import DuplicateError, StockDeskError


class ProductFormModal(ModalScreen[bool]):
    """
    Add a product, or edit one when ``product`` is given.
    Dismisses with True when something was saved.
    """

    def __init__(
        self,
        branches: List[Branch],
        product: Optional[Product] = None,
        default_bid: Optional[int] = None,
    ):
        super().__init__()
        self.branches = branches
        self.product = product
        self.default_bid = product.bid if product else default_bid

    def compose(self) -> ComposeResult:
        p = self.product
        with Vertical(id="div-product-form"):
            yield Label("Edit Product" if p else "Add Product", id="label-form-title")
            yield Label("Product Name")
            yield Input(value=p.name if p else "", id="input-prod-name")
            with Horizontal():
                with Vertical():
                    yield Label("Cost Price")
                    yield Input(
                        value=f"{p.cost_price:.2f}" if p else "",
                        type="number",
                        validators=[Number(minimum=0.0)],
                        id="input-prod-cost",
                    )
                with Vertical():
                    yield Label("Sell Price")
                    yield Input(
                        value=f"{p.sell_price:.2f}" if p else "",
                        type="number",
                        validators=[Number(minimum=0.0)],
                        id="input-prod-sell",
                    )
                with Vertical():
                    yield Label("Stock")
                    yield Input(
                        value=str(p.stock) if p else "",
                        type="integer",
                        validators=[Number(minimum=0)],
                        id="input-prod-stock",
                    )
            yield Label("Branch")
            yield Select(
                [(b.name, b.bid) for b in self.branches],
                prompt="Choose branch",
                id="select-prod-branch",
            )
            with Horizontal(id="div-form-btns"):
                yield Button("Cancel", id="btn-cancel")
                yield Button("Save", id="btn-save", variant="primary")

    def on_mount(self):
        if any(b.bid == self.default_bid for b in self.branches):
            self.query_one("#select-prod-branch", Select).value = self.default_bid
        self.query_one("#input-prod-name").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-save")
    @work(exclusive=True)
    async def handle_save(self) -> None:
        name = self.query_one("#input-prod-name", Input).value
        cost = self.query_one("#input-prod-cost", Input).value
        sell = self.query_one("#input-prod-sell", Input).value
        stock = self.query_one("#input-prod-stock", Input).value
        bid = self.query_one("#select-prod-branch", Select).value
        bid = bid if isinstance(bid, int) else None

        try:
            if self.product is None:
                product = await crud.create_product(bid, name, cost, sell, stock)
                self.notify(f"Product '{product.name}' added.")
            else:
                if not await crud.update_product(
                    self.product.pid, name, cost, sell, stock, bid
                ):
                    self.notify("Product no longer exists.", severity="warning")
                    self.dismiss(False)
                    return
                self.notify("Product updated.")
        except DuplicateError as e:
            name_input = self.query_one("#input-prod-name", Input)
            name_input.add_class("-invalid")
            name_input.focus()
            self.notify(e.message, severity="error")
            return
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return

        self.dismiss(True)

    @on(Button.Pressed, "#btn-cancel")
    def handle_cancel(self):
        self.dismiss(False)
