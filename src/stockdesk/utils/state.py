from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from stockdesk.db.models import CurrentUser


@dataclass
class AppState:
    """
    Session context owned by the app and handed to screens.

    Fields:
      - user: the signed-in principal, set once by ``begin`` and cleared by
        ``end``; never mutated in between
      - bid: branch picked in the branch selector (admins only; users are
        always on their own branch)
    """

    user: Optional[CurrentUser] = None
    bid: Optional[int] = None

    @property
    def signed_in(self) -> bool:
        return self.user is not None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.is_admin

    def begin(self, user: CurrentUser) -> None:
        self.user = user
        self.bid = user.bid

    def end(self) -> None:
        self.user = None
        self.bid = None

    def active_branch(self) -> Optional[int]:
        """Branch that scopes branch-bound actions such as checkout."""
        if self.user is None:
            return None
        if self.user.is_admin:
            return self.bid
        return self.user.bid
