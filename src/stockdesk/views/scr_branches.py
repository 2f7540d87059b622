from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, Label

import stockdesk.db.crud as crud
from stockdesk.utils.errors import StockDeskError, ValidationError
from stockdesk.utils.messages import TableChangedMessage
from stockdesk.views.base_screen import BaseScreen
from stockdesk.views.modal_dialog import ConfirmDeleteModal


class BranchesScreen(BaseScreen):
    """
    Admin only: add and delete branches.
    """

    WATCH_TABLES = ("branches",)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-branches"):
            with Horizontal(id="hort-branch-form"):
                with Vertical():
                    yield Label("Branch Name")
                    yield Input(placeholder="Main Street", id="input-branch-name")
                with Vertical():
                    yield Label("Location")
                    yield Input(placeholder="12 Main St", id="input-branch-location")
                yield Button("Add Branch", id="btn-add-branch", variant="primary")
            yield DataTable(id="table-branches", cursor_type="row", zebra_stripes=True)
            with Horizontal(id="hort-branch-actions"):
                yield Button("Delete Selected", id="btn-delete-branch", variant="error")

    def on_mount(self) -> None:
        table = self.query_one("#table-branches", DataTable)
        table.add_column("ID", key="bid")
        table.add_column("Name", key="name")
        table.add_column("Location", key="location")

    @on(ScreenResume)
    @on(TableChangedMessage)
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        try:
            branches = await crud.list_branches()
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return

        table = self.query_one("#table-branches", DataTable)
        table.clear()
        for b in branches:
            table.add_row(str(b.bid), b.name, b.location or "-", key=str(b.bid))

    def _selected_bid(self) -> Optional[int]:
        table = self.query_one("#table-branches", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return int(row_key.value)

    @on(Button.Pressed, "#btn-add-branch")
    @on(Input.Submitted, "#input-branch-location")
    @work(exclusive=True, group="branch-write")
    async def handle_add(self) -> None:
        name_input = self.query_one("#input-branch-name", Input)
        location_input = self.query_one("#input-branch-location", Input)
        name_input.remove_class("-invalid")

        try:
            branch = await crud.create_branch(name_input.value, location_input.value)
        except ValidationError as e:
            name_input.add_class("-invalid")
            name_input.focus()
            self.notify(e.message, severity="error")
            return
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return

        name_input.value = ""
        location_input.value = ""
        self.notify(f"Branch '{branch.name}' added.")

    @on(Button.Pressed, "#btn-delete-branch")
    @work(exclusive=True, group="branch-write")
    async def handle_delete(self) -> None:
        bid = self._selected_bid()
        if bid is None:
            self.notify("Select a branch first.", severity="warning")
            return
        branch = await crud.get_branch(bid)
        if branch is None:
            self.notify("Branch no longer exists.", severity="warning")
            return
        if not await self.app.push_screen_wait(
            ConfirmDeleteModal(f"branch '{branch.name}'")
        ):
            return

        try:
            deleted = await crud.delete_branch(bid)
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return
        if deleted:
            self.notify(f"Branch '{branch.name}' deleted.")
        else:
            self.notify("Branch no longer exists.", severity="warning")
