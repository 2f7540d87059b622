from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Digits, Label

import stockdesk.db.crud as crud
from stockdesk.utils.errors import StockDeskError
from stockdesk.utils.messages import TableChangedMessage
from stockdesk.views.base_screen import BaseScreen

CARDS = [
    ("products", "Products"),
    ("low_stock", "Low Stock"),
    ("users", "Users"),
    ("orders", "Orders"),
]


class DashboardScreen(BaseScreen):
    """
    Landing page: headline counts, scoped to the user's branch for staff.
    """

    WATCH_TABLES = ("products", "users", "orders")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-dashboard"):
            yield Label("", id="label-greeting")
            with Horizontal(id="hort-cards"):
                for key, title in CARDS:
                    with Vertical(classes="card", id=f"card-{key}"):
                        yield Label(title, classes="card-title")
                        yield Digits("0", id=f"digits-{key}")

    @on(ScreenResume)
    @on(TableChangedMessage)
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        viewer = self.viewer
        if viewer is None:
            return
        try:
            stats = await crud.dashboard_stats(viewer)
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return

        scope = "all branches" if viewer.is_admin else "your branch"
        self.query_one("#label-greeting", Label).update(
            f"Hello {viewer.name}, here is {scope} at a glance."
        )
        for key, _ in CARDS:
            self.query_one(f"#digits-{key}", Digits).update(str(stats[key]))
        low = self.query_one("#card-low_stock")
        low.set_class(stats["low_stock"] > 0, "-alert")
