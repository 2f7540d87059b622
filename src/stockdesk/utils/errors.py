"""
Error taxonomy shared by the data layer and the screens.

Screens catch ``StockDeskError`` and show ``message`` to the user; nothing
is re-raised past the screen that started the operation.
"""

from typing import Dict, Optional


class StockDeskError(Exception):
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(StockDeskError):
    """Missing or malformed input. Blocks the submission."""

    default_message = "Please check the highlighted fields."


class DuplicateError(StockDeskError):
    """A unique name/email is already taken."""

    default_message = "An entry with that name already exists."


class BackendError(StockDeskError):
    """The database refused or failed the operation; nothing was applied."""

    default_message = "Operation failed. Please try again."


class AuthError(StockDeskError):
    """
    Sign-in failure. ``code`` is one of the keys of MESSAGES; unknown codes
    fall back to a generic sentence.
    """

    MESSAGES: Dict[str, str] = {
        "invalid-email": "Invalid email address format.",
        "user-not-found": "No account found with this email address. Please check your credentials.",
        "wrong-password": "Incorrect password. Please try again.",
        "too-many-requests": "Too many failed attempts. Please try again later.",
        "role-mismatch": "This account cannot sign in with the selected role.",
        "missing-credentials": "Email or password cannot be empty!",
    }

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        super().__init__(
            message
            or self.MESSAGES.get(code, "Login failed. Please check your credentials.")
        )
