from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input

import stockdesk.db.crud as crud
from stockdesk.db.models import Product
from stockdesk.utils.errors import StockDeskError
from stockdesk.utils.messages import BranchSelectedMessage, TableChangedMessage
from stockdesk.utils.pure import fmt_money
from stockdesk.views.base_screen import BaseScreen, BranchSelect
from stockdesk.views.modal_dialog import ConfirmDeleteModal
from stockdesk.views.modal_product_form import ProductFormModal


class ProductsScreen(BaseScreen):
    """
    Product list. Admins filter by branch and can add, edit and delete;
    staff see their own branch read-only.
    """

    WATCH_TABLES = ("products", "branches")

    def __init__(self) -> None:
        super().__init__()
        self._products: List[Product] = []
        self._branch_names: Dict[int, str] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-products"):
            with Horizontal(id="hort-prod-filters"):
                yield Input(placeholder="Search by name, id or price...", id="input-search")
                yield BranchSelect(id="select-branch")
            yield DataTable(id="table-products", cursor_type="row", zebra_stripes=True)
            with Horizontal(id="hort-prod-actions"):
                yield Button("Add Product", id="btn-add-prod", variant="primary")
                yield Button("Edit Selected", id="btn-edit-prod")
                yield Button("Delete Selected", id="btn-delete-prod", variant="error")

    def on_mount(self) -> None:
        table = self.query_one("#table-products", DataTable)
        table.add_column("ID", key="pid")
        table.add_column("Name", key="name")
        table.add_column("Branch", key="branch")
        table.add_column("Cost", key="cost")
        table.add_column("Price", key="price")
        table.add_column("Stock", key="stock")
        table.add_column("Sold", key="sold")

    @on(ScreenResume)
    def handle_resume(self) -> None:
        is_admin = self.app.state.is_admin
        self.query_one("#select-branch").display = is_admin
        self.query_one("#hort-prod-actions").display = is_admin
        if is_admin:
            select = self.query_one("#select-branch", BranchSelect)
            select.load(select.selected_bid)
        self.handle_reload()

    @on(BranchSelectedMessage)
    def handle_branch_selected(self, message: BranchSelectedMessage) -> None:
        self.handle_reload()

    @on(TableChangedMessage)
    def handle_table_changed(self, message: TableChangedMessage) -> None:
        if message.table == "branches" and self.app.state.is_admin:
            select = self.query_one("#select-branch", BranchSelect)
            select.load(select.selected_bid)
        self.handle_reload()

    @on(Input.Changed, "#input-search")
    def handle_search(self) -> None:
        self.render_table()

    @work(exclusive=True)
    async def handle_reload(self) -> None:
        viewer = self.viewer
        if viewer is None:
            return
        bid = self.query_one("#select-branch", BranchSelect).selected_bid
        try:
            self._products = await crud.list_products(viewer, bid)
            branches = await crud.list_branches()
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return
        self._branch_names = {b.bid: b.name for b in branches}
        self.render_table()

    def render_table(self) -> None:
        term = self.query_one("#input-search", Input).value
        table = self.query_one("#table-products", DataTable)
        table.clear()
        for p in crud.search_products(self._products, term):
            table.add_row(
                str(p.pid),
                p.name,
                self._branch_names.get(p.bid, f"#{p.bid}"),
                fmt_money(p.cost_price),
                fmt_money(p.sell_price),
                str(p.stock),
                str(p.sales_count),
                key=str(p.pid),
            )

    def _selected_product(self) -> Optional[Product]:
        table = self.query_one("#table-products", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        pid = int(row_key.value)
        return next((p for p in self._products if p.pid == pid), None)

    @on(Button.Pressed, "#btn-add-prod")
    @work()
    async def handle_add(self) -> None:
        branches = self.query_one("#select-branch", BranchSelect).branches
        await self.app.push_screen_wait(
            ProductFormModal(branches, default_bid=self.app.state.active_branch())
        )

    @on(Button.Pressed, "#btn-edit-prod")
    @on(DataTable.RowSelected, "#table-products")
    @work()
    async def handle_edit(self) -> None:
        if not self.app.state.is_admin:
            return
        product = self._selected_product()
        if product is None:
            self.notify("Select a product first.", severity="warning")
            return
        branches = self.query_one("#select-branch", BranchSelect).branches
        await self.app.push_screen_wait(ProductFormModal(branches, product=product))

    @on(Button.Pressed, "#btn-delete-prod")
    @work()
    async def handle_delete(self) -> None:
        product = self._selected_product()
        if product is None:
            self.notify("Select a product first.", severity="warning")
            return
        if not await self.app.push_screen_wait(
            ConfirmDeleteModal(f"'{product.name}'")
        ):
            return
        try:
            deleted = await crud.delete_product(product.pid)
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return
        if deleted:
            self.notify("Product deleted successfully!")
        else:
            self.notify("Product no longer exists.", severity="warning")
