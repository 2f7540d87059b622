from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable

import stockdesk.db.crud as crud
from stockdesk.db.models import Branch, User
from stockdesk.utils.errors import StockDeskError
from stockdesk.utils.messages import TableChangedMessage
from stockdesk.views.base_screen import BaseScreen
from stockdesk.views.modal_dialog import ConfirmDeleteModal
from stockdesk.views.modal_user_form import UserFormModal


class UsersScreen(BaseScreen):
    """
    Admin only: list, add, modify and delete staff accounts.
    """

    WATCH_TABLES = ("users", "branches")

    def __init__(self) -> None:
        super().__init__()
        self._users: List[User] = []
        self._branches: List[Branch] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-users"):
            yield DataTable(id="table-users", cursor_type="row", zebra_stripes=True)
            with Horizontal(id="hort-user-actions"):
                yield Button("Add User", id="btn-add-user", variant="primary")
                yield Button("Modify Selected", id="btn-edit-user")
                yield Button("Delete Selected", id="btn-delete-user", variant="error")

    def on_mount(self) -> None:
        table = self.query_one("#table-users", DataTable)
        table.add_column("ID", key="uid")
        table.add_column("Name", key="name")
        table.add_column("Email", key="email")
        table.add_column("Phone", key="phone")
        table.add_column("Role", key="role")
        table.add_column("Branch", key="branch")

    @on(ScreenResume)
    @on(TableChangedMessage)
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        try:
            self._users = await crud.list_users()
            self._branches = await crud.list_branches()
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return

        names: Dict[int, str] = {b.bid: b.name for b in self._branches}
        table = self.query_one("#table-users", DataTable)
        table.clear()
        for u in self._users:
            table.add_row(
                str(u.uid),
                f"{u.name} {u.last_name}".strip(),
                u.email,
                u.phone or "-",
                u.role,
                names.get(u.bid, "-") if u.bid is not None else "-",
                key=str(u.uid),
            )

    def _selected_user(self) -> Optional[User]:
        table = self.query_one("#table-users", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        uid = int(row_key.value)
        return next((u for u in self._users if u.uid == uid), None)

    @on(Button.Pressed, "#btn-add-user")
    @work()
    async def handle_add(self) -> None:
        await self.app.push_screen_wait(UserFormModal(self._branches))

    @on(Button.Pressed, "#btn-edit-user")
    @on(DataTable.RowSelected, "#table-users")
    @work()
    async def handle_edit(self) -> None:
        user = self._selected_user()
        if user is None:
            self.notify("Select a user first.", severity="warning")
            return
        await self.app.push_screen_wait(UserFormModal(self._branches, user=user))

    @on(Button.Pressed, "#btn-delete-user")
    @work()
    async def handle_delete(self) -> None:
        user = self._selected_user()
        if user is None:
            self.notify("Select a user first.", severity="warning")
            return
        if user.uid == self.viewer.uid:
            self.notify("You cannot delete your own account.", severity="warning")
            return
        if not await self.app.push_screen_wait(ConfirmDeleteModal(user.email)):
            return
        try:
            deleted = await crud.delete_user(user.uid)
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return
        if deleted:
            self.notify("User deleted successfully!")
        else:
            self.notify("User no longer exists.", severity="warning")
