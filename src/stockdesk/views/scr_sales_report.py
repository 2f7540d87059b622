from datetime import date
from typing import Dict, List, Optional

from rich.text import Text
from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import DataTable, Input, Label, Markdown, Select, Sparkline

import stockdesk.db.crud as crud
from stockdesk.utils import report
from stockdesk.utils.errors import StockDeskError
from stockdesk.utils.messages import BranchSelectedMessage, TableChangedMessage
from stockdesk.utils.pure import fmt_money, fmt_pct, generate_markdown_table
from stockdesk.views.base_screen import BaseScreen, BranchSelect

BUCKET_OPTIONS = [(bucket.title(), bucket) for bucket in report.BUCKETS]


class SalesReportScreen(BaseScreen):
    """
    Sales Insights: totals for the chosen day, month or year, sales per
    period as a chart, and the matching orders with their items.
    """

    WATCH_TABLES = ("orders", "branches")

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[report.ReportOrder] = []
        self._shown: Dict[int, report.ReportOrder] = {}
        self._branch_names: Dict[int, str] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-report"):
            with Horizontal(id="hort-report-filters"):
                yield Input(placeholder="Customer or order no...", id="input-search")
                yield Select(
                    BUCKET_OPTIONS, value="daily", allow_blank=False, id="select-bucket"
                )
                yield Input(
                    value=date.today().isoformat(),
                    placeholder="YYYY-MM-DD",
                    id="input-ref-date",
                )
                yield BranchSelect(id="select-branch")
            yield Markdown("", id="md-summary")
            with Horizontal(id="hort-report-periods"):
                yield DataTable(id="table-periods", cursor_type="row")
                with Vertical(id="div-chart"):
                    yield Label("Sales per period", id="label-chart")
                    yield Sparkline([], summary_function=max, id="spark-sales")
            with Horizontal(id="hort-report-orders"):
                yield DataTable(id="table-orders", cursor_type="row", zebra_stripes=True)
                yield Markdown("", id="md-order-items")

    def on_mount(self) -> None:
        periods = self.query_one("#table-periods", DataTable)
        periods.add_column("Period", key="label")
        periods.add_column("Orders", key="orders")
        periods.add_column("Sales", key="sales")
        periods.add_column("Profit", key="profit")

        orders = self.query_one("#table-orders", DataTable)
        orders.add_column("Order", key="ono")
        orders.add_column("Date", key="date")
        orders.add_column("Customer", key="customer")
        orders.add_column("Branch", key="branch")
        orders.add_column("Payment", key="payment")
        orders.add_column("Total", key="total")
        orders.add_column("Profit", key="profit")
        orders.add_column("Margin", key="margin")

    @on(ScreenResume)
    def handle_resume(self) -> None:
        select = self.query_one("#select-branch", BranchSelect)
        select.display = self.app.state.is_admin
        if self.app.state.is_admin:
            select.load(select.selected_bid)
        self.handle_reload()

    @on(TableChangedMessage)
    def handle_table_changed(self, message: TableChangedMessage) -> None:
        if message.table == "branches" and self.app.state.is_admin:
            select = self.query_one("#select-branch", BranchSelect)
            select.load(select.selected_bid)
        self.handle_reload()

    @work(exclusive=True)
    async def handle_reload(self) -> None:
        viewer = self.viewer
        if viewer is None:
            return
        try:
            self._orders = await report.load(viewer)
            branches = await crud.list_branches()
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return
        self._branch_names = {b.bid: b.name for b in branches}
        self.render_report()

    def _ref_date(self) -> Optional[date]:
        ref_input = self.query_one("#input-ref-date", Input)
        try:
            ref = date.fromisoformat(ref_input.value.strip())
        except ValueError:
            ref_input.add_class("-invalid")
            return None
        ref_input.remove_class("-invalid")
        return ref

    @on(Input.Changed, "#input-search")
    @on(Input.Submitted, "#input-ref-date")
    @on(Select.Changed, "#select-bucket")
    @on(BranchSelectedMessage)
    def render_report(self) -> None:
        ref = self._ref_date()
        if ref is None:
            self.notify("Enter the date as YYYY-MM-DD.", severity="warning")
            return
        term = self.query_one("#input-search", Input).value
        bucket = self.query_one("#select-bucket", Select).value
        bid = self.query_one("#select-branch", BranchSelect).selected_bid

        window = report.filter_orders(self._orders, term, bucket, ref, bid=bid)
        periods = report.aggregate(window, bucket)

        self.render_summary(report.summarize(window), bucket, ref)
        self.render_periods(periods)
        self.render_orders(window)

    def render_summary(self, summary: report.ReportSummary, bucket: str, ref: date):
        label = report.bucket_label(
            report.bucket_window(bucket, ref)[0], bucket
        )
        rows = [
            ["Total Sales", fmt_money(summary.sales)],
            ["Total Cost", fmt_money(summary.cost)],
            ["Total Profit", fmt_money(summary.profit)],
            ["Profit Margin", fmt_pct(summary.margin)],
            ["Orders", summary.orders],
            ["Orders at a loss", summary.negative_profit_orders],
        ]
        md = f"### {label}\n\n" + generate_markdown_table(
            ["Metric", "Value"], rows, ["l", "r"]
        )
        self.query_one("#md-summary", Markdown).update(md)

    def render_periods(self, periods: List[report.PeriodTotals]) -> None:
        table = self.query_one("#table-periods", DataTable)
        table.clear()
        for p in periods:
            table.add_row(
                p.label,
                str(p.orders),
                fmt_money(p.sales),
                Text(fmt_money(p.profit), style="red" if p.profit < 0 else ""),
            )
        self.query_one("#spark-sales", Sparkline).data = [p.sales for p in periods]

    def render_orders(self, orders: List[report.ReportOrder]) -> None:
        table = self.query_one("#table-orders", DataTable)
        table.clear()
        self._shown = {o.ono: o for o in orders}
        for o in orders:
            style = "red" if o.negative_profit else ""
            table.add_row(
                str(o.ono),
                f"{o.created_at:%Y-%m-%d %H:%M}",
                o.customer_name,
                self._branch_names.get(o.bid, f"#{o.bid}"),
                o.payment_method,
                fmt_money(o.total),
                Text(fmt_money(o.total_profit), style=style),
                Text(fmt_pct(o.profit_margin), style=style),
                key=str(o.ono),
            )
        if not orders:
            self.query_one("#md-order-items", Markdown).update(
                "_No orders in this period._"
            )

    @on(DataTable.RowHighlighted, "#table-orders")
    def handle_order_highlighted(self, event: DataTable.RowHighlighted) -> None:
        order = self._shown.get(int(event.row_key.value))
        if order is None:
            return
        rows = [
            [
                item.name,
                item.qty,
                fmt_money(item.unit_sell),
                fmt_money(item.unit_cost),
                fmt_money(item.line_profit),
            ]
            for item in order.items
        ]
        md = f"#### Order #{order.ono} ({order.customer_name})\n\n"
        md += generate_markdown_table(
            ["Item", "Qty", "Price", "Cost", "Profit"], rows, ["l", "c", "r", "r", "r"]
        )
        self.query_one("#md-order-items", Markdown).update(md)
