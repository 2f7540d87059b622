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
from stockdesk.db.models import CurrentUser  # noqa: E402
from stockdesk.utils.cart import Cart, CartState, compute_totals  # noqa: E402
from stockdesk.utils.errors import BackendError, ValidationError  # noqa: E402

CLERK = CurrentUser(uid=2, email="clerk@test", name="Clerk", role="user", bid=1)


class CartTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        db_database.DB_PATH = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database.SEED_DEMO = True
        db_database._initialized = False

    async def asyncSetUp(self):
        self.widget = await crud.create_product(1, "Widget", 10, 15, 5)
        self.cart = Cart(bid=1)

    def tearDown(self):
        self.temp_dir.cleanup()

    # ---------- Building the cart ----------

    async def test_states_follow_the_lines(self):
        self.assertIs(self.cart.state, CartState.EMPTY)
        self.cart.add(self.widget)
        self.assertIs(self.cart.state, CartState.READY)
        self.cart.override_price(self.widget.pid, 9)
        self.assertIs(self.cart.state, CartState.BUILDING)
        self.cart.override_price(self.widget.pid, 12)
        self.assertIs(self.cart.state, CartState.READY)
        self.cart.remove(self.widget.pid)
        self.assertIs(self.cart.state, CartState.EMPTY)

    async def test_add_caps_at_stock(self):
        for _ in range(5):
            self.assertTrue(self.cart.add(self.widget).ok)
        result = self.cart.add(self.widget)
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "Cannot add more than available stock (5)")
        self.assertEqual(self.cart.get(self.widget.pid).qty, 5)

    async def test_add_out_of_stock_product(self):
        stapler = await crud.get_product(104)
        result = self.cart.add(stapler)
        self.assertFalse(result.ok)
        self.assertEqual(len(self.cart), 0)

    async def test_set_qty_above_stock_is_rejected(self):
        lamp = await crud.get_product(103)  # stock 1
        self.cart.add(lamp)
        result = self.cart.set_qty(lamp.pid, 2)
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "Only 1 items available")
        self.assertEqual(self.cart.get(lamp.pid).qty, 1)

    async def test_set_qty_below_one_removes_line(self):
        self.cart.add(self.widget)
        self.assertTrue(self.cart.set_qty(self.widget.pid, 0).ok)
        self.assertIsNone(self.cart.get(self.widget.pid))

    async def test_total_is_recomputed(self):
        pen = await crud.get_product(102)
        self.cart.add(self.widget)
        self.cart.add(pen)
        self.cart.set_qty(pen.pid, 3)
        self.assertAlmostEqual(self.cart.total, 15 + 3 * 0.8)
        self.assertEqual(self.cart.item_count, 4)
        self.cart.override_price(self.widget.pid, 20)
        self.assertAlmostEqual(self.cart.total, 20 + 3 * 0.8)

    async def test_negative_price_is_rejected(self):
        self.cart.add(self.widget)
        result = self.cart.override_price(self.widget.pid, -1)
        self.assertFalse(result.ok)
        self.assertEqual(self.cart.get(self.widget.pid).sell_price, 15)

    async def test_non_finite_price_is_rejected(self):
        self.cart.add(self.widget)
        for price in (float("nan"), float("inf"), float("-inf")):
            result = self.cart.override_price(self.widget.pid, price)
            self.assertFalse(result.ok)
            self.assertEqual(result.message, "Please enter a valid price")
        line = self.cart.get(self.widget.pid)
        self.assertEqual(line.sell_price, 15)
        self.assertIs(self.cart.state, CartState.READY)

    async def test_switch_branch_discards_cart(self):
        self.cart.add(self.widget)
        self.cart.switch_branch(1)
        self.assertEqual(len(self.cart), 1)
        self.cart.switch_branch(2)
        self.assertEqual(len(self.cart), 0)
        self.assertEqual(self.cart.bid, 2)

    async def test_compute_totals_zero_total(self):
        self.cart.add(self.widget)
        self.cart.override_price(self.widget.pid, 0)
        totals = compute_totals(self.cart.lines)
        self.assertEqual(totals.total, 0)
        self.assertEqual(totals.profit_margin, 0.0)
        self.assertEqual(totals.total_profit, -10)

    # ---------- Checkout ----------

    async def test_checkout_commits_order_and_stock(self):
        for _ in range(3):
            self.cart.add(self.widget)

        order = await self.cart.checkout("Jane", "Cash", viewer=CLERK)

        self.assertAlmostEqual(order.total, 45)
        self.assertAlmostEqual(order.total_cost, 30)
        self.assertAlmostEqual(order.total_profit, 15)
        self.assertAlmostEqual(order.profit_margin, 33.333333, places=4)
        self.assertEqual(order.uid, CLERK.uid)
        self.assertEqual(order.items[0].qty, 3)

        self.assertIs(self.cart.state, CartState.EMPTY)
        self.assertEqual(len(self.cart), 0)
        self.assertIs(self.cart.last_order, order)

        widget = await crud.get_product(self.widget.pid)
        self.assertEqual(widget.stock, 2)
        self.assertEqual(widget.sales_count, 3)

        stored = await crud.get_order(order.ono)
        self.assertEqual(stored.customer_name, "Jane")

        # the same cart takes the next sale
        self.cart.add(widget)
        self.assertIs(self.cart.state, CartState.READY)

    async def test_checkout_preconditions(self):
        with self.assertRaises(ValidationError) as ctx:
            await self.cart.checkout("Jane")
        self.assertEqual(ctx.exception.message, "Your cart is empty!")

        self.cart.add(self.widget)
        with self.assertRaises(ValidationError) as ctx:
            await self.cart.checkout("   ")
        self.assertEqual(ctx.exception.message, "Please enter customer name")

        no_branch = Cart()
        no_branch.add(self.widget)
        with self.assertRaises(ValidationError) as ctx:
            await no_branch.checkout("Jane")
        self.assertEqual(ctx.exception.message, "Branch ID not found for current user.")

        with self.assertRaises(ValidationError):
            await self.cart.checkout("Jane", "Cheque")

        self.assertEqual((await crud.get_product(self.widget.pid)).stock, 5)

    async def test_below_cost_blocks_until_fixed(self):
        self.cart.add(self.widget)
        result = self.cart.override_price(self.widget.pid, 8)
        self.assertTrue(result.ok)
        self.assertEqual(result.severity, "warning")

        with self.assertRaises(ValidationError) as ctx:
            await self.cart.checkout("Jane")
        self.assertEqual(
            ctx.exception.message,
            "Cannot checkout: 1 item(s) priced below cost. First item: widget",
        )
        self.assertEqual(await crud.list_orders(CLERK), [])

        self.cart.override_price(self.widget.pid, 11)
        order = await self.cart.checkout("Jane")
        self.assertAlmostEqual(order.total, 11)

    async def test_stale_stock_fails_and_keeps_cart(self):
        lamp = await crud.get_product(103)
        self.cart.add(lamp)
        # someone else sells the last lamp first
        await crud.update_product(lamp.pid, lamp.name, 14, 22.99, 0, 1)

        with self.assertRaises(BackendError):
            await self.cart.checkout("Jane")

        self.assertIs(self.cart.state, CartState.READY)
        self.assertEqual(self.cart.get(lamp.pid).qty, 1)
        self.assertIsNotNone(self.cart.last_error)
        self.assertEqual(await crud.list_orders(CLERK), [])

    async def test_unexpected_failure_is_wrapped(self):
        self.cart.add(self.widget)
        with mock.patch.object(
            crud, "commit_order", mock.AsyncMock(side_effect=OSError("disk gone"))
        ):
            with self.assertRaises(BackendError) as ctx:
                await self.cart.checkout("Jane")
        self.assertEqual(ctx.exception.message, "Checkout failed. Please try again.")
        self.assertIs(self.cart.state, CartState.READY)
        self.assertEqual(len(self.cart), 1)


if __name__ == "__main__":
    unittest.main()
