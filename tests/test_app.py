import os
import sys
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from stockdesk.db.models import CurrentUser  # noqa: E402
from stockdesk.main import StockDeskApp  # noqa: E402

ADMIN = CurrentUser(uid=1, email="admin@test", name="Admin", role="admin", bid=None)
CLERK = CurrentUser(uid=2, email="clerk@test", name="Clerk", role="user", bid=1)


class AppSessionTestCase(unittest.TestCase):
    def setUp(self):
        self.app = StockDeskApp()

    def test_end_session_when_signed_out_is_a_no_op(self):
        self.assertFalse(self.app.end_session())
        self.assertIsNone(self.app.state.user)

    def test_second_sign_out_is_ignored(self):
        self.app.state.begin(CLERK)
        self.assertTrue(self.app.end_session())
        self.assertIsNone(self.app.state.user)
        self.assertIsNone(self.app.state.bid)
        self.assertFalse(self.app.end_session())

    def test_menu_follows_role(self):
        self.assertEqual(self.app.menu_modes(), {})

        self.app.state.begin(CLERK)
        self.assertEqual(list(self.app.menu_modes()), StockDeskApp.USER_MODES)
        self.assertNotIn("users", self.app.menu_modes())

        self.app.state.begin(ADMIN)
        self.assertEqual(list(self.app.menu_modes()), StockDeskApp.ADMIN_MODES)


if __name__ == "__main__":
    unittest.main()
