import os
import sys
import tempfile
import unittest
from unittest import mock

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from stockdesk.db import crud  # noqa: E402
from stockdesk.db import database as db_database  # noqa: E402
from stockdesk.utils import auth  # noqa: E402
from stockdesk.utils.config import get_settings  # noqa: E402
from stockdesk.utils.errors import AuthError  # noqa: E402
from stockdesk.utils.state import AppState  # noqa: E402


class AuthTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        db_database.DB_PATH = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database.SEED_DEMO = True
        db_database._initialized = False
        auth.reset_throttle()

    async def asyncSetUp(self):
        self.clerk = await crud.create_user(
            "Jane", "Doe", "jane@example.com", "pw-jane", 1
        )

    def tearDown(self):
        auth.reset_throttle()
        self.temp_dir.cleanup()

    async def assertAuthCode(self, code, *args, **kwargs):
        with self.assertRaises(AuthError) as ctx:
            await auth.sign_in(*args, **kwargs)
        self.assertEqual(ctx.exception.code, code)
        return ctx.exception

    # ---------- sign_in ----------

    async def test_sign_in_success_is_case_insensitive(self):
        user = await auth.sign_in("  JANE@example.com ", "pw-jane")
        self.assertEqual(user.uid, self.clerk.uid)
        self.assertEqual(user.role, "user")
        self.assertEqual(user.bid, 1)
        self.assertFalse(user.is_admin)

    async def test_bootstrap_admin_can_sign_in(self):
        settings = get_settings()
        admin = await auth.sign_in(
            settings.admin_email, settings.admin_password, as_role="admin"
        )
        self.assertTrue(admin.is_admin)
        self.assertIsNone(admin.bid)

    async def test_error_codes(self):
        await self.assertAuthCode("missing-credentials", "", "pw")
        await self.assertAuthCode("invalid-email", "jane-at-example", "pw")
        await self.assertAuthCode("user-not-found", "ghost@example.com", "pw")
        err = await self.assertAuthCode("wrong-password", "jane@example.com", "nope")
        self.assertEqual(err.message, "Incorrect password. Please try again.")

    async def test_unknown_code_has_generic_message(self):
        self.assertEqual(
            AuthError("internal-error").message,
            "Login failed. Please check your credentials.",
        )

    async def test_role_mismatch(self):
        err = await self.assertAuthCode(
            "role-mismatch", "jane@example.com", "pw-jane", as_role="admin"
        )
        self.assertEqual(err.message, "Access denied. Admin privileges required.")

        settings = get_settings()
        err = await self.assertAuthCode(
            "role-mismatch", settings.admin_email, settings.admin_password, as_role="user"
        )
        self.assertIn("Admin", err.message)

    async def test_throttle_after_repeated_failures(self):
        for _ in range(auth.MAX_FAILED_ATTEMPTS):
            await self.assertAuthCode("wrong-password", "jane@example.com", "nope")
        # even the right password is refused while locked out
        await self.assertAuthCode("too-many-requests", "jane@example.com", "pw-jane")

        # other accounts are unaffected
        settings = get_settings()
        await auth.sign_in(settings.admin_email, settings.admin_password)

    async def test_throttle_window_expires(self):
        clock = mock.Mock(monotonic=mock.Mock(return_value=1000.0))
        with mock.patch.object(auth, "time", clock):
            for _ in range(auth.MAX_FAILED_ATTEMPTS):
                await self.assertAuthCode("wrong-password", "jane@example.com", "x")
        later = 1000.0 + auth.FAILED_ATTEMPT_WINDOW + 1
        clock.monotonic.return_value = later
        with mock.patch.object(auth, "time", clock):
            user = await auth.sign_in("jane@example.com", "pw-jane")
        self.assertEqual(user.uid, self.clerk.uid)

    async def test_failure_map_does_not_grow(self):
        for n in range(20):
            await self.assertAuthCode("user-not-found", f"ghost{n}@example.com", "pw")
        self.assertEqual(len(auth._failed_attempts), 0)

        clock = mock.Mock(monotonic=mock.Mock(return_value=1000.0))
        with mock.patch.object(auth, "time", clock):
            await self.assertAuthCode("wrong-password", "jane@example.com", "x")
            self.assertIn("jane@example.com", auth._failed_attempts)
            # expired failures are forgotten along with their entry
            clock.monotonic.return_value = 1000.0 + auth.FAILED_ATTEMPT_WINDOW + 1
            user = await auth.sign_in("jane@example.com", "pw-jane")
        self.assertEqual(user.uid, self.clerk.uid)
        self.assertEqual(len(auth._failed_attempts), 0)

        late = 1000.0 + auth.FAILED_ATTEMPT_WINDOW + 1
        auth._failed_attempts["old@example.com"].append(1000.0)
        self.assertEqual(auth._recent_failures("old@example.com", late), 0)
        self.assertNotIn("old@example.com", auth._failed_attempts)

    async def test_success_resets_failures(self):
        for _ in range(auth.MAX_FAILED_ATTEMPTS - 1):
            await self.assertAuthCode("wrong-password", "jane@example.com", "nope")
        await auth.sign_in("jane@example.com", "pw-jane")
        await self.assertAuthCode("wrong-password", "jane@example.com", "nope")
        await auth.sign_in("jane@example.com", "pw-jane")

    async def test_password_change_takes_effect(self):
        await crud.update_user(
            self.clerk.uid, "Jane", "jane@example.com", "user", 1, password="new-pw"
        )
        await self.assertAuthCode("wrong-password", "jane@example.com", "pw-jane")
        self.assertEqual(
            (await auth.sign_in("jane@example.com", "new-pw")).uid, self.clerk.uid
        )

    # ---------- resolve_identity ----------

    async def test_resolve_identity(self):
        user = await auth.resolve_identity(self.clerk.uid)
        self.assertEqual(user.email, "jane@example.com")
        self.assertIsNone(await auth.resolve_identity(None))
        self.assertIsNone(await auth.resolve_identity(424242))

    async def test_resolve_identity_backend_failure_is_signed_out(self):
        with mock.patch.object(
            crud, "get_user", mock.AsyncMock(side_effect=RuntimeError("offline"))
        ):
            self.assertIsNone(await auth.resolve_identity(self.clerk.uid))

    # ---------- session context ----------

    async def test_app_state_scopes_branch(self):
        state = AppState()
        self.assertFalse(state.signed_in)
        self.assertIsNone(state.active_branch())

        clerk = await auth.sign_in("jane@example.com", "pw-jane")
        state.begin(clerk)
        state.bid = 2  # only admins may pick another branch
        self.assertEqual(state.active_branch(), 1)

        settings = get_settings()
        admin = await auth.sign_in(settings.admin_email, settings.admin_password)
        state.begin(admin)
        self.assertIsNone(state.active_branch())
        state.bid = 2
        self.assertEqual(state.active_branch(), 2)
        self.assertTrue(state.is_admin)

        state.end()
        self.assertFalse(state.signed_in)
        self.assertIsNone(state.bid)


if __name__ == "__main__":
    unittest.main()
