# src/stockdesk/db/crud.py
from __future__ import annotations

import math
import re
import sqlite3
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from werkzeug.security import generate_password_hash

from stockdesk.db import models
from stockdesk.db.database import connect, from_db_time, now, publish, to_db_time
from stockdesk.utils.config import LOW_STOCK_THRESHOLD
from stockdesk.utils.errors import BackendError, DuplicateError, ValidationError
from stockdesk.utils.logger import get_logger

_logger = get_logger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[0-9]{10,11}$")


def _to_int(val) -> Optional[int]:
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


def _to_float(val) -> Optional[float]:
    try:
        number = float(val)
    except (TypeError, ValueError):
        return None
    # nan and inf parse but are not money
    return number if math.isfinite(number) else None


def _is_blank(val) -> bool:
    return val is None or (isinstance(val, str) and not val.strip())


def _is_unique_violation(err: sqlite3.IntegrityError) -> bool:
    return "UNIQUE" in str(err).upper()


def normalize_name(name: str) -> str:
    return (name or "").strip().lower()


# ---------------------------
# Branch directory
# ---------------------------


def _row_to_branch(row) -> models.Branch:
    return models.Branch(bid=int(row[0]), name=row[1], location=row[2] or "")


async def list_branches() -> List[models.Branch]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT bid, name, location FROM branches ORDER BY name COLLATE NOCASE;"
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_branch(row) for row in rows]


async def get_branch(bid: int) -> Optional[models.Branch]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT bid, name, location FROM branches WHERE bid = ?;", (bid,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_branch(row) if row else None


async def create_branch(name: str, location: str = "") -> models.Branch:
    """Add a branch. Blank names are rejected, names are unique."""
    name = (name or "").strip()
    location = (location or "").strip()
    if not name:
        raise ValidationError("Branch name is required")

    async with connect() as conn:
        try:
            cur = await conn.execute(
                "INSERT INTO branches(name, location) VALUES (?, ?);",
                (name, location),
            )
            await conn.commit()
        except sqlite3.IntegrityError as e:
            if _is_unique_violation(e):
                raise DuplicateError(f"Branch '{name}' already exists.") from e
            raise BackendError("Failed to add branch") from e
        except sqlite3.Error as e:
            _logger.error(f"create_branch failed: {e}")
            raise BackendError("Failed to add branch") from e
        bid = cur.lastrowid
        await cur.close()

    _logger.info(f"Branch {bid} '{name}' created.")
    publish("branches")
    return models.Branch(bid=bid, name=name, location=location)


async def delete_branch(bid: int) -> bool:
    """
    Delete a branch. Products, users and orders pointing at it are left as
    they are.
    """
    async with connect() as conn:
        try:
            cur = await conn.execute("DELETE FROM branches WHERE bid = ?;", (bid,))
            await conn.commit()
        except sqlite3.Error as e:
            _logger.error(f"delete_branch({bid}) failed: {e}")
            raise BackendError("Failed to delete branch") from e
        deleted = cur.rowcount > 0
        await cur.close()

    if deleted:
        _logger.info(f"Branch {bid} deleted.")
        publish("branches")
    return deleted


# ---------------------------
# Catalog
# ---------------------------

_PRODUCT_COLS = "pid, name, cost_price, sell_price, stock, bid, created_at, sales_count"


def _row_to_product(row) -> models.Product:
    return models.Product(
        pid=int(row[0]),
        name=row[1],
        cost_price=float(row[2]),
        sell_price=float(row[3]),
        stock=int(row[4]),
        bid=int(row[5]),
        created_at=from_db_time(row[6]),
        sales_count=int(row[7] or 0),
    )


def _parse_product_fields(
    name, cost_price, sell_price, stock
) -> Tuple[str, float, float, int]:
    """Check presence and numeric-ness; return the normalized values."""
    if any(_is_blank(v) for v in (name, cost_price, sell_price, stock)):
        raise ValidationError("All fields are required.")

    norm = normalize_name(str(name))
    cost = _to_float(cost_price)
    sell = _to_float(sell_price)
    qty = _to_int(stock)
    if cost is None or sell is None or qty is None:
        raise ValidationError("Please enter valid values for all fields.")
    if cost < 0 or sell < 0:
        raise ValidationError("Prices cannot be negative.")
    if qty < 0:
        raise ValidationError("Stock cannot be negative.")
    return norm, cost, sell, qty


async def create_product(
    bid: Optional[int], name, cost_price, sell_price, stock
) -> models.Product:
    """
    Add a product to a branch.

    The name is stored trimmed and lowercase; the (branch, name) pair is a
    unique index, so a concurrent duplicate loses at insert time instead of
    slipping past a pre-read.
    """
    norm, cost, sell, qty = _parse_product_fields(name, cost_price, sell_price, stock)
    if sell <= cost:
        raise ValidationError("Sell price must be greater than cost price.")
    if bid is None:
        raise ValidationError("Branch not assigned to current user.")

    created = now()
    async with connect() as conn:
        try:
            cur = await conn.execute(
                """
                INSERT INTO products(bid, name, cost_price, sell_price, stock, sales_count, created_at)
                VALUES (?, ?, ?, ?, ?, 0, ?);
                """,
                (bid, norm, cost, sell, qty, to_db_time(created)),
            )
            await conn.commit()
        except sqlite3.IntegrityError as e:
            if _is_unique_violation(e):
                raise DuplicateError(
                    "Product with this name already exists in this branch."
                ) from e
            raise BackendError("Failed to add product.") from e
        except sqlite3.Error as e:
            _logger.error(f"create_product failed: {e}")
            raise BackendError("Failed to add product.") from e
        pid = cur.lastrowid
        await cur.close()

    _logger.info(f"Product {pid} '{norm}' created in branch {bid}.")
    publish("products")
    return models.Product(
        pid=pid,
        name=norm,
        cost_price=cost,
        sell_price=sell,
        stock=qty,
        bid=bid,
        created_at=created,
        sales_count=0,
    )


async def get_product(pid: int) -> Optional[models.Product]:
    """Fetch a product by pid."""
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLS} FROM products WHERE pid = ?;", (pid,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_product(row) if row else None


async def list_products(
    viewer: models.CurrentUser, bid: Optional[int] = None
) -> List[models.Product]:
    """
    Products visible to ``viewer``.

    Admins get every branch, or only ``bid`` when given. Everyone else is
    pinned to their own branch whatever ``bid`` says.
    """
    if not viewer.is_admin:
        bid = viewer.bid
        if bid is None:
            return []

    async with connect() as conn:
        if bid is None:
            cur = await conn.execute(
                f"SELECT {_PRODUCT_COLS} FROM products ORDER BY name, pid;"
            )
        else:
            cur = await conn.execute(
                f"SELECT {_PRODUCT_COLS} FROM products WHERE bid = ? ORDER BY name, pid;",
                (bid,),
            )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


def search_products(
    products: Iterable[models.Product], term: str
) -> List[models.Product]:
    """
    Filter already-loaded products: name (case-insensitive), product id and
    sell price are matched as substrings.
    """
    term = (term or "").strip().lower()
    if not term:
        return list(products)
    return [
        p
        for p in products
        if term in p.name.lower()
        or term in str(p.pid)
        or term in f"{p.sell_price:.2f}"
    ]


async def update_product(
    pid: int, name, cost_price, sell_price, stock, bid: Optional[int]
) -> bool:
    """
    Overwrite every mutable field, branch included. No version check, the
    last writer wins. Returns False if the product no longer exists.
    """
    norm, cost, sell, qty = _parse_product_fields(name, cost_price, sell_price, stock)
    if bid is None:
        raise ValidationError("Please choose a branch.")

    async with connect() as conn:
        try:
            cur = await conn.execute(
                """
                UPDATE products
                SET name = ?, cost_price = ?, sell_price = ?, stock = ?, bid = ?
                WHERE pid = ?;
                """,
                (norm, cost, sell, qty, bid, pid),
            )
            await conn.commit()
        except sqlite3.IntegrityError as e:
            if _is_unique_violation(e):
                raise DuplicateError(
                    "Product with this name already exists in this branch."
                ) from e
            raise BackendError("Failed to update product. Please try again.") from e
        except sqlite3.Error as e:
            _logger.error(f"update_product({pid}) failed: {e}")
            raise BackendError("Failed to update product. Please try again.") from e
        updated = cur.rowcount > 0
        await cur.close()

    if updated:
        _logger.info(f"Product {pid} updated.")
        publish("products")
    return updated


async def delete_product(pid: int) -> bool:
    """Delete unconditionally; past orders keep their own snapshot of the line."""
    async with connect() as conn:
        try:
            cur = await conn.execute("DELETE FROM products WHERE pid = ?;", (pid,))
            await conn.commit()
        except sqlite3.Error as e:
            _logger.error(f"delete_product({pid}) failed: {e}")
            raise BackendError("Failed to delete product.") from e
        deleted = cur.rowcount > 0
        await cur.close()

    if deleted:
        _logger.info(f"Product {pid} deleted.")
        publish("products")
    return deleted


# ---------------------------
# Low stock
# ---------------------------


async def list_low_stock(bid: Optional[int] = None) -> List[models.Product]:
    """Every product with stock below LOW_STOCK_THRESHOLD, optionally for one branch."""
    async with connect() as conn:
        if bid is None:
            cur = await conn.execute(
                f"""
                SELECT {_PRODUCT_COLS}
                FROM products
                WHERE stock < ?
                ORDER BY stock, name;
                """,
                (LOW_STOCK_THRESHOLD,),
            )
        else:
            cur = await conn.execute(
                f"""
                SELECT {_PRODUCT_COLS}
                FROM products
                WHERE stock < ? AND bid = ?
                ORDER BY stock, name;
                """,
                (LOW_STOCK_THRESHOLD, bid),
            )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


def stock_level(product: models.Product) -> float:
    """Stock as a percentage of the low-stock threshold."""
    return product.stock / LOW_STOCK_THRESHOLD * 100


# ---------------------------
# Users
# ---------------------------

_USER_COLS = "uid, name, last_name, email, phone, role, bid, pwd_hash, created_at"


def _row_to_user(row) -> models.User:
    return models.User(
        uid=int(row[0]),
        name=row[1],
        last_name=row[2] or "",
        email=row[3],
        phone=row[4] or "",
        role=row[5],
        bid=_to_int(row[6]),
        pwd_hash=row[7],
        created_at=from_db_time(row[8]),
    )


def validate_email(email: str) -> str:
    email = (email or "").strip()
    if not EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email address.")
    return email


def _validate_role(role: str) -> str:
    if role not in ("admin", "user"):
        raise ValidationError("Role must be 'admin' or 'user'.")
    return role


async def create_user(
    name: str,
    last_name: str,
    email: str,
    password: str,
    bid: Optional[int],
    phone: str = "",
    role: str = "user",
) -> models.User:
    """Add a staff account; the password is stored as a werkzeug hash."""
    if _is_blank(name) or _is_blank(email) or _is_blank(password) or bid is None:
        raise ValidationError("Name, Email, Password, and Branch are required!")
    email = validate_email(email)
    phone = (phone or "").strip()
    if phone and not PHONE_RE.match(phone):
        raise ValidationError("Please enter a valid 10-11 digit phone number.")
    role = _validate_role(role)

    created = now()
    pwd_hash = generate_password_hash(password)
    async with connect() as conn:
        try:
            cur = await conn.execute(
                """
                INSERT INTO users(name, last_name, email, phone, role, bid, pwd_hash, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    name.strip(),
                    (last_name or "").strip(),
                    email,
                    phone,
                    role,
                    bid,
                    pwd_hash,
                    to_db_time(created),
                ),
            )
            await conn.commit()
        except sqlite3.IntegrityError as e:
            if _is_unique_violation(e):
                raise DuplicateError("A user with this email already exists.") from e
            raise BackendError("Something went wrong. Please try again.") from e
        except sqlite3.Error as e:
            _logger.error(f"create_user failed: {e}")
            raise BackendError("Something went wrong. Please try again.") from e
        uid = cur.lastrowid
        await cur.close()

    _logger.info(f"User {uid} <{email}> created with role {role}.")
    publish("users")
    return models.User(
        uid=uid,
        name=name.strip(),
        last_name=(last_name or "").strip(),
        email=email,
        phone=phone,
        role=role,
        bid=bid,
        pwd_hash=pwd_hash,
        created_at=created,
    )


async def get_user(uid: int) -> Optional[models.User]:
    """Return the User for the given uid, or None if not found."""
    async with connect() as conn:
        cur = await conn.execute(f"SELECT {_USER_COLS} FROM users WHERE uid = ?;", (uid,))
        row = await cur.fetchone()
        await cur.close()
    return _row_to_user(row) if row else None


async def get_user_by_email(email: str) -> Optional[models.User]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_USER_COLS} FROM users WHERE email = ? COLLATE NOCASE;",
            ((email or "").strip(),),
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_user(row) if row else None


async def list_users() -> List[models.User]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_USER_COLS} FROM users ORDER BY name COLLATE NOCASE, uid;"
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_user(row) for row in rows]


async def update_user(
    uid: int,
    name: str,
    email: str,
    role: str,
    bid: Optional[int],
    password: Optional[str] = None,
    last_name: Optional[str] = None,
) -> bool:
    """
    Overwrite name/email/role/branch. A non-empty ``password`` replaces the
    stored hash; an empty one keeps it.
    """
    if _is_blank(name) or _is_blank(email) or _is_blank(role):
        raise ValidationError("Please fill in all required fields")
    email = validate_email(email)
    role = _validate_role(role)

    sets = ["name = ?", "email = ?", "role = ?", "bid = ?"]
    params: List = [name.strip(), email, role, bid]
    if last_name is not None:
        sets.append("last_name = ?")
        params.append(last_name.strip())
    if password:
        sets.append("pwd_hash = ?")
        params.append(generate_password_hash(password))
    params.append(uid)

    async with connect() as conn:
        try:
            cur = await conn.execute(
                f"UPDATE users SET {', '.join(sets)} WHERE uid = ?;", tuple(params)
            )
            await conn.commit()
        except sqlite3.IntegrityError as e:
            if _is_unique_violation(e):
                raise DuplicateError("A user with this email already exists.") from e
            raise BackendError("Failed to update user. Please try again.") from e
        except sqlite3.Error as e:
            _logger.error(f"update_user({uid}) failed: {e}")
            raise BackendError("Failed to update user. Please try again.") from e
        updated = cur.rowcount > 0
        await cur.close()

    if updated:
        _logger.info(f"User {uid} updated.")
        publish("users")
    return updated


async def delete_user(uid: int) -> bool:
    """Delete unconditionally. A session already opened by that user stays open."""
    async with connect() as conn:
        try:
            cur = await conn.execute("DELETE FROM users WHERE uid = ?;", (uid,))
            await conn.commit()
        except sqlite3.Error as e:
            _logger.error(f"delete_user({uid}) failed: {e}")
            raise BackendError("Failed to delete user.") from e
        deleted = cur.rowcount > 0
        await cur.close()

    if deleted:
        _logger.info(f"User {uid} deleted.")
        publish("users")
    return deleted


# ---------------------------
# Orders
# ---------------------------


async def commit_order(
    bid: int,
    uid: Optional[int],
    customer_name: str,
    payment_method: str,
    items: Sequence[models.OrderItem],
    total: float,
    total_cost: float,
    total_profit: float,
    profit_margin: float,
    when: Optional[datetime] = None,
) -> models.Order:
    """
    Insert the order with its lines and take every line's quantity out of
    stock, all in one transaction.

    Each decrement is guarded by ``stock >= qty``; if any line cannot be
    applied the whole transaction is rolled back and BackendError is raised,
    so there is never an order without its stock movement or the reverse.
    """
    when = when or now()
    async with connect() as conn:
        try:
            await conn.execute("BEGIN IMMEDIATE;")
            cur = await conn.execute(
                """
                INSERT INTO orders(bid, uid, customer_name, payment_method, total,
                                   total_cost, total_profit, profit_margin, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    bid,
                    uid,
                    customer_name,
                    payment_method,
                    total,
                    total_cost,
                    total_profit,
                    profit_margin,
                    to_db_time(when),
                ),
            )
            ono = cur.lastrowid
            await cur.close()

            for line_no, item in enumerate(items, start=1):
                await conn.execute(
                    """
                    INSERT INTO order_items(ono, line_no, pid, name, qty, unit_sell,
                                            unit_cost, line_cost, line_profit)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        ono,
                        line_no,
                        item.pid,
                        item.name,
                        item.qty,
                        item.unit_sell,
                        item.unit_cost,
                        item.line_cost,
                        item.line_profit,
                    ),
                )
                cur = await conn.execute(
                    """
                    UPDATE products
                    SET stock = stock - ?, sales_count = sales_count + ?
                    WHERE pid = ? AND stock >= ?;
                    """,
                    (item.qty, item.qty, item.pid, item.qty),
                )
                applied = cur.rowcount
                await cur.close()
                if applied != 1:
                    raise BackendError(
                        f"Not enough stock left for '{item.name}'. Checkout failed."
                    )

            await conn.commit()
        except BackendError:
            await conn.rollback()
            _logger.warning(f"Order for branch {bid} rolled back: stock changed.")
            raise
        except sqlite3.Error as e:
            await conn.rollback()
            _logger.error(f"Order for branch {bid} rolled back: {e}")
            raise BackendError("Checkout failed. Please try again.") from e

    _logger.info(
        f"Order {ono} committed: branch {bid}, {len(items)} line(s), total {total:.2f}."
    )
    publish("orders")
    publish("products")
    return models.Order(
        ono=ono,
        customer_name=customer_name,
        bid=bid,
        uid=uid,
        items=tuple(items),
        total=total,
        total_cost=total_cost,
        total_profit=total_profit,
        profit_margin=profit_margin,
        payment_method=payment_method,
        created_at=when,
    )


def _row_to_item(row) -> models.OrderItem:
    return models.OrderItem(
        pid=int(row[1]),
        name=row[2],
        qty=int(row[3]),
        unit_sell=float(row[4]),
        unit_cost=float(row[5]),
        line_cost=float(row[6]),
        line_profit=float(row[7]),
    )


def _row_to_order(row, items: Sequence[models.OrderItem]) -> models.Order:
    return models.Order(
        ono=int(row[0]),
        customer_name=row[1],
        bid=int(row[2]),
        uid=_to_int(row[3]),
        items=tuple(items),
        total=float(row[4] or 0.0),
        total_cost=_to_float(row[5]),
        total_profit=_to_float(row[6]),
        profit_margin=_to_float(row[7]),
        payment_method=row[8],
        created_at=from_db_time(row[9]),
    )


_ORDER_COLS = (
    "ono, customer_name, bid, uid, total, total_cost, total_profit, "
    "profit_margin, payment_method, created_at"
)


async def list_orders(
    viewer: models.CurrentUser, bid: Optional[int] = None
) -> List[models.Order]:
    """
    Orders visible to ``viewer``, newest first, each with its lines.
    Non-admins only ever see their own branch.
    """
    if not viewer.is_admin:
        bid = viewer.bid
        if bid is None:
            return []

    async with connect() as conn:
        if bid is None:
            cur = await conn.execute(
                f"SELECT {_ORDER_COLS} FROM orders ORDER BY created_at DESC, ono DESC;"
            )
            order_rows = await cur.fetchall()
            await cur.close()
            cur = await conn.execute(
                """
                SELECT ono, pid, name, qty, unit_sell, unit_cost, line_cost, line_profit
                FROM order_items
                ORDER BY ono, line_no;
                """
            )
        else:
            cur = await conn.execute(
                f"SELECT {_ORDER_COLS} FROM orders WHERE bid = ? ORDER BY created_at DESC, ono DESC;",
                (bid,),
            )
            order_rows = await cur.fetchall()
            await cur.close()
            cur = await conn.execute(
                """
                SELECT oi.ono, oi.pid, oi.name, oi.qty, oi.unit_sell, oi.unit_cost,
                       oi.line_cost, oi.line_profit
                FROM order_items oi
                JOIN orders o ON o.ono = oi.ono
                WHERE o.bid = ?
                ORDER BY oi.ono, oi.line_no;
                """,
                (bid,),
            )
        item_rows = await cur.fetchall()
        await cur.close()

    items_by_order: Dict[int, List[models.OrderItem]] = defaultdict(list)
    for row in item_rows:
        items_by_order[int(row[0])].append(_row_to_item(row))
    return [_row_to_order(row, items_by_order[int(row[0])]) for row in order_rows]


async def get_order(ono: int) -> Optional[models.Order]:
    async with connect() as conn:
        cur = await conn.execute(f"SELECT {_ORDER_COLS} FROM orders WHERE ono = ?;", (ono,))
        order_row = await cur.fetchone()
        await cur.close()
        if not order_row:
            return None
        cur = await conn.execute(
            """
            SELECT ono, pid, name, qty, unit_sell, unit_cost, line_cost, line_profit
            FROM order_items
            WHERE ono = ?
            ORDER BY line_no;
            """,
            (ono,),
        )
        item_rows = await cur.fetchall()
        await cur.close()
    return _row_to_order(order_row, [_row_to_item(row) for row in item_rows])


# ---------------------------
# Dashboard
# ---------------------------


async def dashboard_stats(viewer: models.CurrentUser) -> Dict[str, int]:
    """Counts for the landing screen, scoped to the viewer's branch for non-admins."""
    scoped = not viewer.is_admin
    where = " WHERE bid = ?" if scoped else ""
    params: Tuple = (viewer.bid,) if scoped else ()

    async with connect() as conn:

        async def count(sql: str, extra: Tuple = ()) -> int:
            cur = await conn.execute(sql, params + extra)
            row = await cur.fetchone()
            await cur.close()
            return int(row[0] or 0)

        products = await count(f"SELECT COUNT(*) FROM products{where};")
        low_stock = await count(
            f"SELECT COUNT(*) FROM products{where}{' AND' if scoped else ' WHERE'} stock < ?;",
            (LOW_STOCK_THRESHOLD,),
        )
        users = await count(f"SELECT COUNT(*) FROM users{where};")
        orders = await count(f"SELECT COUNT(*) FROM orders{where};")

    return {
        "products": products,
        "low_stock": low_stock,
        "users": users,
        "orders": orders,
    }
