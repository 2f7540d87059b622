# provide dataclass models

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional, Tuple

Role = Literal["admin", "user"]


@dataclass(frozen=True)
class Branch:
    bid: int
    name: str
    location: str


@dataclass(frozen=True)
class Product:
    pid: int
    name: str  # stored trimmed and lowercase
    cost_price: float
    sell_price: float
    stock: int
    bid: int
    created_at: datetime
    sales_count: int = 0


@dataclass(frozen=True)
class User:
    uid: int
    name: str
    last_name: str
    email: str
    phone: str
    role: Role
    bid: Optional[int]
    pwd_hash: str = field(repr=False)
    created_at: datetime


@dataclass(frozen=True)
class CurrentUser:
    """The signed-in principal; passed to every call that scopes by branch."""

    uid: int
    email: str
    name: str
    role: Role
    bid: Optional[int]

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class OrderItem:
    pid: int
    name: str
    qty: int
    unit_sell: float
    unit_cost: float
    line_cost: float
    line_profit: float


@dataclass(frozen=True)
class Order:
    ono: int
    customer_name: str
    bid: int
    uid: Optional[int]
    items: Tuple[OrderItem, ...]
    total: float
    total_cost: Optional[float]
    total_profit: Optional[float]
    profit_margin: Optional[float]
    payment_method: str
    created_at: datetime
