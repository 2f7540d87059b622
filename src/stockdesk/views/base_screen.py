from typing import Callable, List, Optional, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import Mount, ScreenResume, Unmount
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown, Select

import stockdesk.db.crud as crud
import stockdesk.db.database as database
from stockdesk.db.models import Branch
from stockdesk.utils.errors import StockDeskError
from stockdesk.utils.messages import (
    BranchSelectedMessage,
    TableChangedMessage,
    UserLogoutMessage,
)
from stockdesk.utils.pure import generate_markdown_table
from stockdesk.views.modal_dialog import DialogModal, QuitDialogModal


class Sidebar(Container):
    """User card, log out button and the menu of modes the role may open."""

    def compose(self) -> ComposeResult:
        yield Label("User Info", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    @work(exclusive=True, group="sidebar")
    async def reload(self) -> None:
        user = self.app.state.user
        list_menu: ListView = self.query_one("#list-menu", ListView)
        await list_menu.clear()
        if user is None:
            await self.query_one("#md-userinfo", Markdown).update("")
            return

        branch_name = "All branches"
        if user.bid is not None:
            branch = await crud.get_branch(user.bid)
            branch_name = branch.name if branch else f"#{user.bid} (removed)"

        table_rows = [
            ["Name", user.name],
            ["Email", user.email],
            ["Role", "Administrator" if user.is_admin else "Staff"],
            ["Branch", branch_name],
        ]
        await self.query_one("#md-userinfo", Markdown).update(
            generate_markdown_table(None, table_rows, ["l", "l"])
        )

        await list_menu.extend(
            [
                ListItem(Label(label), name=mode)
                for mode, label in self.app.menu_modes().items()
            ]
        )
        self.highlight_item(self.app.current_mode)

    async def on_list_view_selected(self, event: ListView.Selected):
        self.highlight_item(self.app.current_mode)
        await self.app.open_mode(event.item.name)

    @on(Button.Pressed, "#btn-logout")
    @work()
    async def handle_logout(self):
        if not await self.app.push_screen_wait(
            DialogModal(
                "Are you sure you want to log out?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        self.post_message(UserLogoutMessage())

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu", ListView)
        for item in list_menu.children:
            item.highlighted = item.name == mode_str


class BranchSelect(Select[int]):
    """
    Branch picker. Posts BranchSelectedMessage with the bid, or None for the
    blank "All Branches" entry.
    """

    def __init__(self, prompt: str = "All Branches", **kwargs):
        super().__init__([], prompt=prompt, allow_blank=True, **kwargs)
        self._branches: List[Branch] = []

    @property
    def branches(self) -> List[Branch]:
        return self._branches

    @work(exclusive=True, group="branch-select")
    async def load(self, selected: Optional[int] = None) -> None:
        try:
            self._branches = await crud.list_branches()
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return
        self.set_options([(b.name, b.bid) for b in self._branches])
        if selected is not None and any(b.bid == selected for b in self._branches):
            self.value = selected

    @property
    def selected_bid(self) -> Optional[int]:
        return self.value if isinstance(self.value, int) else None

    @on(Select.Changed)
    def handle_changed(self, event: Select.Changed) -> None:
        event.stop()
        self.post_message(BranchSelectedMessage(self.selected_bid))


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    # tables whose writes should post a TableChangedMessage to this screen
    WATCH_TABLES: Tuple[str, ...] = ()

    def __init__(self):
        super().__init__()
        self._unsubscribers: List[Callable[[], None]] = []
        self.configure()

    @on(Mount)
    def handle_feed_subscribe(self) -> None:
        for table in self.WATCH_TABLES:
            self._unsubscribers.append(
                database.subscribe(
                    table, lambda t: self.post_message(TableChangedMessage(t))
                )
            )

    @on(Unmount)
    def handle_feed_unsubscribe(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def configure(
        self,
        header_sub_title: str = "",
        show_sidebar: bool = True,
    ) -> None:
        self.app.title = "StockDesk"
        self.sub_title = header_sub_title
        for mode, screen_cls in self.app.MODES.items():
            if type(self) is screen_cls:
                self.sub_title = self.app.MODE_LABELS.get(mode, header_sub_title)
        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    @on(ScreenResume)
    def handle_sidebar_resume(self) -> None:
        # the same mode screen is reused across sign-ins
        if self._show_sidebar:
            self.query_one(Sidebar).reload()

    @property
    def viewer(self):
        return self.app.state.user

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
