from typing import Dict

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from stockdesk.utils import auth
from stockdesk.utils.logger import get_logger
from stockdesk.utils.messages import (
    ModeSwitchedMessage,
    NewOrderMessage,
    QuitRequestedMessage,
    UserLogoutMessage,
)
from stockdesk.utils.state import AppState
from stockdesk.views.scr_branches import BranchesScreen
from stockdesk.views.scr_checkout import CheckoutScreen
from stockdesk.views.scr_dashboard import DashboardScreen
from stockdesk.views.scr_login import LoginScreen
from stockdesk.views.scr_products import ProductsScreen
from stockdesk.views.scr_sales_report import SalesReportScreen
from stockdesk.views.scr_stock_alert import StockAlertScreen
from stockdesk.views.scr_users import UsersScreen

_logger = get_logger(__name__)


class StockDeskApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "dashboard": DashboardScreen,
        "branches": BranchesScreen,
        "products": ProductsScreen,
        "stock_alert": StockAlertScreen,
        "users": UsersScreen,
        "checkout": CheckoutScreen,
        "sales_report": SalesReportScreen,
    }

    MODE_LABELS = {
        "dashboard": "Dashboard",
        "branches": "Manage Branches",
        "products": "Products",
        "stock_alert": "Stock Alert",
        "users": "Users",
        "checkout": "Checkout",
        "sales_report": "Sales Report",
    }

    ADMIN_MODES = list(MODE_LABELS)
    USER_MODES = ["dashboard", "products", "checkout", "sales_report"]

    CSS_PATH = [
        "styles/index.tcss",
        "styles/login.tcss",
        "styles/pos.tcss",
        "styles/manage.tcss",
        "styles/report.tcss",
    ]

    state: AppState

    def __init__(self):
        super().__init__()
        self.state = AppState()

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    def menu_modes(self) -> Dict[str, str]:
        """Modes the signed-in role may open, in menu order."""
        if self.state.user is None:
            return {}
        allowed = self.ADMIN_MODES if self.state.is_admin else self.USER_MODES
        return {mode: self.MODE_LABELS[mode] for mode in allowed}

    async def open_mode(self, mode: str) -> bool:
        if mode not in self.menu_modes():
            self.notify("You do not have access to that page.", severity="error")
            return False
        if self.current_mode != mode:
            self.post_message(ModeSwitchedMessage(self.current_mode, mode))
            await self.switch_mode(mode)
        return True

    def end_session(self) -> bool:
        """Forget the signed-in user. False when nobody was signed in."""
        user = self.state.user
        if user is None:
            return False
        self.state.end()
        _logger.info(f"User {user.uid} signed out.")
        return True

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        if not self.end_session():
            return
        # every role can see the dashboard
        if self.current_mode != "dashboard":
            await self.switch_mode("dashboard")
        self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    def handle_quit(self):
        self.state.end()
        self.exit()

    @on(ModeSwitchedMessage)
    def handle_mode_switched(self, message: ModeSwitchedMessage) -> None:
        _logger.debug(f"Mode {message.old_mode} -> {message.new_mode}")

    @on(NewOrderMessage)
    def handle_new_order(self, message: NewOrderMessage) -> None:
        _logger.debug(f"Order {message.ono} placed from the checkout screen.")

    @work(exclusive=True, group="main-flow")
    async def main_flow(self):
        while True:
            uid = await self.push_screen_wait(LoginScreen())
            user = await auth.resolve_identity(uid)
            if user is not None:
                break
            self.notify(
                "Your account could not be loaded. Please sign in again.",
                severity="error",
            )

        self.state.begin(user)
        await self.open_mode("dashboard")


def main() -> None:
    app = StockDeskApp()
    app.run()


if __name__ == "__main__":
    main()
