from datetime import datetime
from typing import Optional

from rich.progress_bar import ProgressBar
from rich.text import Text
from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume, ScreenSuspend
from textual.timer import Timer
from textual.widgets import DataTable, Label

import stockdesk.db.crud as crud
from stockdesk.utils.config import LOW_STOCK_REFRESH_SECONDS, LOW_STOCK_THRESHOLD
from stockdesk.utils.errors import StockDeskError
from stockdesk.utils.messages import BranchSelectedMessage, TableChangedMessage
from stockdesk.views.base_screen import BaseScreen, BranchSelect


class StockAlertScreen(BaseScreen):
    """
    Products running out, refreshed on a timer and whenever stock changes.
    """

    WATCH_TABLES = ("products", "branches")

    _timer: Optional[Timer] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-stock-alert"):
            with Horizontal(id="hort-alert-filters"):
                yield BranchSelect(id="select-branch")
                yield Label("", id="label-last-checked")
            yield Label("", id="label-alert-count")
            yield DataTable(id="table-low-stock", cursor_type="row", zebra_stripes=True)

    def on_mount(self) -> None:
        table = self.query_one("#table-low-stock", DataTable)
        table.add_column("ID", key="pid")
        table.add_column("Name", key="name")
        table.add_column("Branch", key="branch")
        table.add_column("Stock", key="stock")
        table.add_column("Level", key="level")
        self._timer = self.set_interval(
            LOW_STOCK_REFRESH_SECONDS, self.handle_reload, pause=True
        )

    @on(ScreenResume)
    def handle_resume(self) -> None:
        select = self.query_one("#select-branch", BranchSelect)
        select.load(select.selected_bid)
        self.handle_reload()
        if self._timer is not None:
            self._timer.resume()

    @on(ScreenSuspend)
    def handle_suspend(self) -> None:
        if self._timer is not None:
            self._timer.pause()

    @on(BranchSelectedMessage)
    def handle_branch_selected(self, message: BranchSelectedMessage) -> None:
        self.handle_reload()

    @on(TableChangedMessage)
    def handle_table_changed(self, message: TableChangedMessage) -> None:
        if message.table == "branches":
            select = self.query_one("#select-branch", BranchSelect)
            select.load(select.selected_bid)
        self.handle_reload()

    # timer ticks and change events both land here; the newest run wins
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        select = self.query_one("#select-branch", BranchSelect)
        try:
            products = await crud.list_low_stock(select.selected_bid)
            branches = await crud.list_branches()
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return
        names = {b.bid: b.name for b in branches}

        table = self.query_one("#table-low-stock", DataTable)
        table.clear()
        for p in products:
            level = crud.stock_level(p)
            table.add_row(
                str(p.pid),
                p.name,
                names.get(p.bid, f"#{p.bid}"),
                Text(str(p.stock), style="bold red" if p.stock <= 0 else "yellow"),
                ProgressBar(total=100, completed=level, width=20),
                key=str(p.pid),
            )

        count = self.query_one("#label-alert-count", Label)
        if products:
            count.update(
                f"{len(products)} product(s) below {LOW_STOCK_THRESHOLD} in stock"
            )
        else:
            count.update("All products are sufficiently stocked.")
        self.query_one("#label-last-checked", Label).update(
            f"Last checked {datetime.now():%H:%M:%S}"
        )
