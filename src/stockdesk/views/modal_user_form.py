from typing import List, Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Select

import stockdesk.db.crud as crud
from stockdesk.db.models import Branch, User
from stockdesk.utils.errors import DuplicateError, StockDeskError

ROLE_OPTIONS = [("User", "user"), ("Admin", "admin")]


class UserFormModal(ModalScreen[bool]):
    """
    Add a staff account, or modify ``user``. On modify an empty password
    keeps the current one.
    """

    def __init__(self, branches: List[Branch], user: Optional[User] = None):
        super().__init__()
        self.branches = branches
        self.user = user

    def compose(self) -> ComposeResult:
        u = self.user
        with Vertical(id="div-user-form"):
            yield Label("Modify User" if u else "Add User", id="label-form-title")
            with Horizontal():
                with Vertical():
                    yield Label("First Name")
                    yield Input(value=u.name if u else "", id="input-user-name")
                with Vertical():
                    yield Label("Last Name")
                    yield Input(value=u.last_name if u else "", id="input-user-last")
            yield Label("Email")
            yield Input(
                value=u.email if u else "",
                placeholder="user@example.com",
                id="input-user-email",
            )
            if u is None:
                yield Label("Phone")
                yield Input(placeholder="0771234567", type="integer", id="input-user-phone")
            yield Label("Password")
            yield Input(
                password=True,
                placeholder="leave blank to keep" if u else "*********",
                id="input-user-pwd",
            )
            with Horizontal():
                with Vertical():
                    yield Label("Role")
                    yield Select(
                        ROLE_OPTIONS,
                        value=u.role if u else "user",
                        allow_blank=False,
                        id="select-user-role",
                    )
                with Vertical():
                    yield Label("Branch")
                    yield Select(
                        [(b.name, b.bid) for b in self.branches],
                        prompt="Choose branch",
                        id="select-user-branch",
                    )
            with Horizontal(id="div-form-btns"):
                yield Button("Cancel", id="btn-cancel")
                yield Button("Save", id="btn-save", variant="primary")

    def on_mount(self):
        if self.user and any(b.bid == self.user.bid for b in self.branches):
            self.query_one("#select-user-branch", Select).value = self.user.bid
        self.query_one("#input-user-name").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-save")
    @work(exclusive=True)
    async def handle_save(self) -> None:
        name = self.query_one("#input-user-name", Input).value
        last_name = self.query_one("#input-user-last", Input).value
        email = self.query_one("#input-user-email", Input).value
        password = self.query_one("#input-user-pwd", Input).value
        role = self.query_one("#select-user-role", Select).value
        bid = self.query_one("#select-user-branch", Select).value
        bid = bid if isinstance(bid, int) else None

        try:
            if self.user is None:
                phone = self.query_one("#input-user-phone", Input).value
                await crud.create_user(
                    name, last_name, email, password, bid, phone=phone, role=role
                )
                self.notify("User added successfully!")
            else:
                if not await crud.update_user(
                    self.user.uid,
                    name,
                    email,
                    role,
                    bid,
                    password=password,
                    last_name=last_name,
                ):
                    self.notify("User no longer exists.", severity="warning")
                    self.dismiss(False)
                    return
                self.notify("User updated successfully!")
        except DuplicateError as e:
            email_input = self.query_one("#input-user-email", Input)
            email_input.add_class("-invalid")
            email_input.focus()
            self.notify(e.message, severity="error")
            return
        except StockDeskError as e:
            self.notify(e.message, severity="error")
            return

        self.dismiss(True)

    @on(Button.Pressed, "#btn-cancel")
    def handle_cancel(self):
        self.dismiss(False)
