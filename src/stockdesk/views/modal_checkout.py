from typing import Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer, Select

from stockdesk.utils.cart import Cart, compute_totals
from stockdesk.utils.config import PAYMENT_METHODS
from stockdesk.utils.errors import StockDeskError, ValidationError
from stockdesk.utils.messages import NewOrderMessage
from stockdesk.utils.pure import fmt_money, fmt_pct, generate_markdown_table
from stockdesk.views.modal_dialog import DialogModal


class CheckoutModal(ModalScreen[Optional[int]]):
    """
    Order summary plus customer name and payment method.
    Dismisses with the new order number, or None when cancelled.
    """

    def __init__(self, cart: Cart):
        super().__init__()
        self.cart = cart

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            yield Label("Customer Name")
            yield Input(placeholder="Jane Doe", id="input-customer-name")
            yield Label("Payment Method")
            yield Select(
                [(m, m) for m in PAYMENT_METHODS],
                value=PAYMENT_METHODS[0],
                allow_blank=False,
                id="select-payment",
            )
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        totals = compute_totals(self.cart.lines)
        headers = ["Product Name", "Unit Price", "Quantity", "Total Price"]
        rows = [
            [line.name, fmt_money(line.sell_price), line.qty, fmt_money(line.line_total)]
            for line in self.cart.lines
        ]
        md = "### Order Summary\n\n"
        md += generate_markdown_table(headers, rows, ["l", "r", "c", "r"])
        md += (
            f"\n\n**Total:** {fmt_money(totals.total)}"
            f"  \n**Profit:** {fmt_money(totals.total_profit)}"
            f" ({fmt_pct(totals.profit_margin)})"
        )
        await self.query_one(MarkdownViewer).document.update(md)
        self.query_one("#input-customer-name").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Button.Pressed, "#btn-submit")
    @on(Input.Submitted, "#input-customer-name")
    @work(exclusive=True)
    async def handle_submit(self):
        name_input = self.query_one("#input-customer-name", Input)
        payment = self.query_one("#select-payment", Select).value
        name_input.remove_class("-invalid")

        try:
            self.cart.validate_checkout(name_input.value, payment)
        except ValidationError as e:
            if not name_input.value.strip():
                name_input.add_class("-invalid")
                name_input.focus()
            self.notify(e.message, severity="error")
            return

        if not await self.app.push_screen_wait(
            DialogModal(
                f"Place order of {fmt_money(self.cart.total)}? This cannot be undone.",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        try:
            order = await self.cart.checkout(
                name_input.value, payment, viewer=self.app.state.user
            )
        except StockDeskError as e:
            # cart is kept so the order can be retried
            self.notify(e.message, severity="error")
            return

        self.app.post_message(NewOrderMessage(order.ono))
        self.notify(f"Order #{order.ono} placed for {fmt_money(order.total)}.")
        self.dismiss(order.ono)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(None)
