from typing import Optional

from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user logs out
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired by the checkout screen after any line was added, changed or removed.
    Triggers a re-render of the cart table and the total.
    """

    bubble = True


class NewOrderMessage(Message):
    """
    Fired when an order was committed.
    Listened to by the sales report and the dashboard.
    """

    bubble = True

    def __init__(self, ono: int) -> None:
        super().__init__()
        self.ono = ono


class TableChangedMessage(Message):
    """
    Posted from the database change feed whenever a table was written.
    Each screen subscribes on mount and posts this to itself.
    """

    bubble = True

    def __init__(self, table: str) -> None:
        super().__init__()
        self.table = table


class BranchSelectedMessage(Message):
    """
    Fired by the branch selector; bid is None for "All Branches".
    """

    bubble = True

    def __init__(self, bid: Optional[int]) -> None:
        super().__init__()
        self.bid = bid


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
