from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label, Select

from stockdesk.utils import auth
from stockdesk.utils.errors import AuthError
from stockdesk.views.base_screen import BaseScreen
from stockdesk.views.modal_dialog import QuitDialogModal

ROLE_OPTIONS = [("User", "user"), ("Admin", "admin")]


class LoginScreen(BaseScreen):
    """
    If login successful, dismiss with the uid of the user logged in.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Login", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-login"):
            yield Label("Email")
            yield Input(placeholder="you@example.com", id="input-login-email")
            yield Label("Password")
            yield Input(placeholder="*********", password=True, id="input-login-pwd")
            yield Label("Login as")
            yield Select(
                ROLE_OPTIONS, value="user", allow_blank=False, id="select-login-role"
            )
            with Horizontal(id="div-login-btns"):
                yield Button("Quit", id="btn-quit")
                yield Button("Login", id="btn-login", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-email").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> Optional[int]:
        email_input = self.query_one("#input-login-email", Input)
        pwd_input = self.query_one("#input-login-pwd", Input)
        role = self.query_one("#select-login-role", Select).value

        email_input.remove_class("-invalid")
        pwd_input.remove_class("-invalid")

        try:
            user = await auth.sign_in(email_input.value, pwd_input.value, as_role=role)
        except AuthError as e:
            self.notify(e.message, severity="error")
            if e.code in ("invalid-email", "user-not-found"):
                email_input.add_class("-invalid")
                email_input.focus()
            else:
                pwd_input.value = ""
                pwd_input.add_class("-invalid")
                pwd_input.focus()
            return

        pwd_input.value = ""
        self.notify(f"Welcome, {user.name}!")
        self.dismiss(user.uid)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
