from typing import List, Optional

from rich.text import Text
from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume, ScreenSuspend
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label, Rule

import stockdesk.db.crud as crud
from stockdesk.db.models import Product
from stockdesk.utils.cart import Cart, CartResult
from stockdesk.utils.errors import StockDeskError
from stockdesk.utils.messages import (
    BranchSelectedMessage,
    CartChangedMessage,
    TableChangedMessage,
)
from stockdesk.utils.pure import fmt_money
from stockdesk.views.base_screen import BaseScreen, BranchSelect
from stockdesk.views.modal_checkout import CheckoutModal
from stockdesk.views.modal_dialog import DialogModal


class CheckoutScreen(BaseScreen):
    """
    Point of sale: pick products of the active branch into a cart, adjust
    quantities or prices, then check out.
    """

    WATCH_TABLES = ("products", "branches")

    def __init__(self) -> None:
        super().__init__()
        self.cart = Cart()
        self._products: List[Product] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-pos"):
            with Vertical(id="div-pos-products"):
                with Horizontal(id="hort-pos-filters"):
                    yield Input(placeholder="Search products...", id="input-search")
                    yield BranchSelect(prompt="Choose branch", id="select-branch")
                yield DataTable(id="table-pos-products", cursor_type="row", zebra_stripes=True)
                yield Button("Add to Cart", id="btn-add-to-cart", variant="primary")
            with Vertical(id="div-pos-cart"):
                yield DataTable(id="table-cart", cursor_type="row")
                with Horizontal(id="hort-line-edit"):
                    with Vertical():
                        yield Label("Qty")
                        yield Input(
                            type="integer",
                            validators=[Number(minimum=0)],
                            id="input-line-qty",
                        )
                    with Vertical():
                        yield Label("Unit Price")
                        yield Input(
                            type="number",
                            validators=[Number(minimum=0.0)],
                            id="input-line-price",
                        )
                    yield Button("Apply", id="btn-apply-line")
                    yield Button("Remove", id="btn-remove-line", variant="warning")
                yield Rule(line_style="dashed")
                yield Label("Total: ", id="label-cart-total")
                yield Label("", id="label-cart-warning")
                with Horizontal(id="hort-buttons"):
                    yield Button("Clear Cart", id="btn-clear-cart")
                    yield Button("Checkout", id="btn-checkout", variant="success")

    def on_mount(self) -> None:
        products = self.query_one("#table-pos-products", DataTable)
        products.add_column("ID", key="pid")
        products.add_column("Name", key="name")
        products.add_column("Price", key="price")
        products.add_column("Stock", key="stock")

        cart = self.query_one("#table-cart", DataTable)
        cart.add_column("Item", key="name")
        cart.add_column("Qty", key="qty")
        cart.add_column("Price", key="price")
        cart.add_column("Line Total", key="total")

    # ---------- lifecycle ----------

    @on(ScreenResume)
    def handle_resume(self) -> None:
        state = self.app.state
        self.query_one("#select-branch").display = state.is_admin
        if state.is_admin:
            self.query_one("#select-branch", BranchSelect).load(state.bid)
        self.cart.switch_branch(state.active_branch())
        self.render_cart()
        self.handle_reload()

    @on(ScreenSuspend)
    def handle_suspend(self) -> None:
        # a dialog on top keeps the sale; leaving the page abandons it
        if not isinstance(self.app.screen, ModalScreen):
            self.cart.clear()

    @on(BranchSelectedMessage)
    def handle_branch_selected(self, message: BranchSelectedMessage) -> None:
        self.app.state.bid = message.bid
        if message.bid != self.cart.bid and len(self.cart):
            self.notify("Branch changed, cart cleared.", severity="warning")
        self.cart.switch_branch(message.bid)
        self.post_message(CartChangedMessage())
        self.handle_reload()

    @on(TableChangedMessage)
    def handle_table_changed(self, message: TableChangedMessage) -> None:
        if message.table == "branches" and self.app.state.is_admin:
            self.query_one("#select-branch", BranchSelect).load(self.app.state.bid)
        self.handle_reload()

    @work(exclusive=True)
    async def handle_reload(self) -> None:
        viewer = self.viewer
        if viewer is None:
            return
        bid = self.cart.bid
        if bid is None:
            self._products = []
        else:
            try:
                self._products = await crud.list_products(viewer, bid)
            except StockDeskError as e:
                self.notify(e.message, severity="error")
                return
        self.cart.sync_stock(self._products)
        self.render_products()

    # ---------- rendering ----------

    @on(Input.Changed, "#input-search")
    def render_products(self) -> None:
        term = self.query_one("#input-search", Input).value
        table = self.query_one("#table-pos-products", DataTable)
        table.clear()
        for p in crud.search_products(self._products, term):
            style = "dim" if p.stock <= 0 else ""
            table.add_row(
                Text(str(p.pid), style=style),
                Text(p.name, style=style),
                Text(fmt_money(p.sell_price), style=style),
                Text(str(p.stock) if p.stock > 0 else "out of stock", style=style),
                key=str(p.pid),
            )

    @on(CartChangedMessage)
    def render_cart(self) -> None:
        table = self.query_one("#table-cart", DataTable)
        table.clear()
        for line in self.cart.lines:
            style = "bold red" if line.below_cost else ""
            table.add_row(
                line.name,
                str(line.qty),
                Text(fmt_money(line.sell_price), style=style),
                fmt_money(line.line_total),
                key=str(line.pid),
            )

        self.query_one("#label-cart-total", Label).update(
            f"Total: {fmt_money(self.cart.total)} ({self.cart.item_count} item(s))"
        )
        below = self.cart.below_cost_lines
        warning = ""
        if below:
            warning = f"{len(below)} item(s) priced below cost"
        self.query_one("#label-cart-warning", Label).update(warning)
        self.fill_line_inputs()

    def fill_line_inputs(self) -> None:
        pid = self._selected_cart_pid()
        line = self.cart.get(pid) if pid is not None else None
        self.query_one("#input-line-qty", Input).value = str(line.qty) if line else ""
        self.query_one("#input-line-price", Input).value = (
            f"{line.sell_price:.2f}" if line else ""
        )

    def _show(self, result: CartResult) -> None:
        self.notify(result.message, severity=result.severity)
        if result.ok:
            self.post_message(CartChangedMessage())

    # ---------- cart actions ----------

    def _selected_product(self) -> Optional[Product]:
        table = self.query_one("#table-pos-products", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        pid = int(row_key.value)
        return next((p for p in self._products if p.pid == pid), None)

    def _selected_cart_pid(self) -> Optional[int]:
        table = self.query_one("#table-cart", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return int(row_key.value)

    @on(Button.Pressed, "#btn-add-to-cart")
    @on(DataTable.RowSelected, "#table-pos-products")
    def handle_add(self) -> None:
        product = self._selected_product()
        if product is None:
            self.notify("Select a product first.", severity="warning")
            return
        self._show(self.cart.add(product))

    @on(DataTable.RowHighlighted, "#table-cart")
    def handle_cart_row(self) -> None:
        self.fill_line_inputs()

    @on(Button.Pressed, "#btn-apply-line")
    def handle_apply_line(self) -> None:
        pid = self._selected_cart_pid()
        if pid is None:
            self.notify("Select a cart item first.", severity="warning")
            return
        line = self.cart.get(pid)
        qty_raw = self.query_one("#input-line-qty", Input).value.strip()
        price_raw = self.query_one("#input-line-price", Input).value.strip()

        try:
            qty = int(qty_raw) if qty_raw else None
            price = float(price_raw) if price_raw else None
        except ValueError:
            self.notify("Please enter valid values.", severity="error")
            return

        if qty is not None and qty != line.qty:
            result = self.cart.set_qty(pid, qty)
            self._show(result)
            if not result.ok or self.cart.get(pid) is None:
                return
        if price is not None and price != line.sell_price:
            self._show(self.cart.override_price(pid, price))

    @on(Button.Pressed, "#btn-remove-line")
    def handle_remove_line(self) -> None:
        pid = self._selected_cart_pid()
        if pid is None:
            self.notify("Select a cart item first.", severity="warning")
            return
        self._show(self.cart.remove(pid))

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        if not len(self.cart):
            self.notify("Cart is empty.", severity="warning")
            return
        if await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        ):
            self.cart.clear()
            self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        """
        Open up checkout screen
        """
        try:
            self.cart.check_ready()
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return

        await self.app.push_screen_wait(CheckoutModal(self.cart))
        self.post_message(CartChangedMessage())
        self.handle_reload()
