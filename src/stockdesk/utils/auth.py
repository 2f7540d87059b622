"""
Identity resolver: turns credentials or a stored principal id into the
``CurrentUser`` every screen works with.
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Deque, Dict, Optional

from werkzeug.security import check_password_hash

import stockdesk.db.crud as crud
from stockdesk.db.models import CurrentUser, User
from stockdesk.utils.errors import AuthError, ValidationError
from stockdesk.utils.logger import get_logger

_logger = get_logger(__name__)

MAX_FAILED_ATTEMPTS = 5
FAILED_ATTEMPT_WINDOW = 300.0  # seconds

_failed_attempts: Dict[str, Deque[float]] = defaultdict(deque)


def check_password(user: User, password: str) -> bool:
    return bool(user.pwd_hash) and check_password_hash(user.pwd_hash, password)


def to_current_user(user: User) -> CurrentUser:
    return CurrentUser(
        uid=user.uid,
        email=user.email,
        name=user.name or user.email.split("@")[0],
        role=user.role if user.role in ("admin", "user") else "user",
        bid=user.bid,
    )


def _recent_failures(email: str, clock: float) -> int:
    attempts = _failed_attempts.get(email)
    if attempts is None:
        return 0
    while attempts and clock - attempts[0] > FAILED_ATTEMPT_WINDOW:
        attempts.popleft()
    if not attempts:
        del _failed_attempts[email]
    return len(attempts)


def reset_throttle() -> None:
    _failed_attempts.clear()


async def sign_in(
    email: str, password: str, as_role: Optional[str] = None
) -> CurrentUser:
    """
    Verify credentials and return the signed-in user.

    Raises AuthError with one of: missing-credentials, invalid-email,
    too-many-requests, user-not-found, wrong-password, role-mismatch.
    """
    email = (email or "").strip().lower()
    if not email or not password:
        raise AuthError("missing-credentials")
    try:
        crud.validate_email(email)
    except ValidationError as e:
        raise AuthError("invalid-email") from e

    clock = time.monotonic()
    if _recent_failures(email, clock) >= MAX_FAILED_ATTEMPTS:
        _logger.warning(f"Sign-in for {email} throttled.")
        raise AuthError("too-many-requests")

    user = await crud.get_user_by_email(email)
    if user is None:
        raise AuthError("user-not-found")
    if not check_password(user, password):
        _failed_attempts[email].append(clock)
        _logger.info(f"Wrong password for {email}.")
        raise AuthError("wrong-password")

    _failed_attempts.pop(email, None)
    if as_role and user.role != as_role:
        if user.role == "admin":
            raise AuthError(
                "role-mismatch",
                'Please select "Admin" from the dropdown to login as admin.',
            )
        raise AuthError("role-mismatch", "Access denied. Admin privileges required.")

    _logger.info(f"User {user.uid} <{email}> signed in as {user.role}.")
    return to_current_user(user)


async def resolve_identity(uid: Optional[int]) -> Optional[CurrentUser]:
    """
    Map an authenticated principal to its user record.

    A missing record, or a failing lookup, resolves to None: the session is
    treated as signed out rather than trusted.
    """
    if uid is None:
        return None
    try:
        user = await crud.get_user(uid)
    except Exception:
        _logger.exception(f"Identity lookup for {uid} failed.")
        return None
    if user is None:
        _logger.warning(f"Principal {uid} has no user record.")
        return None
    return to_current_user(user)
