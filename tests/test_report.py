import os
import sys
import tempfile
import unittest
from datetime import date, datetime

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from stockdesk.db import crud  # noqa: E402
from stockdesk.db import database as db_database  # noqa: E402
from stockdesk.db.models import CurrentUser, Order, OrderItem  # noqa: E402
from stockdesk.utils import report  # noqa: E402

ADMIN = CurrentUser(uid=1, email="admin@test", name="Admin", role="admin", bid=None)
CLERK_HARBOR = CurrentUser(uid=3, email="h@test", name="H", role="user", bid=2)


def _order(ono, when, total, cost, customer="Jane", bid=1):
    profit = total - cost
    return report.ReportOrder(
        ono=ono,
        customer_name=customer,
        bid=bid,
        created_at=when,
        total=total,
        total_cost=cost,
        total_profit=profit,
        profit_margin=profit / total * 100 if total else 0.0,
        payment_method="Cash",
        items=(),
    )


class ReportTestCase(unittest.TestCase):
    def setUp(self):
        self.orders = [
            _order(1, datetime(2024, 12, 31, 23, 59, 59), 100, 60),
            _order(2, datetime(2025, 1, 1, 0, 0, 0), 50, 70, customer="Bob"),
            _order(3, datetime(2025, 1, 1, 18, 30), 20, 10, bid=2),
            _order(4, datetime(2025, 1, 15, 9, 0), 40, 30, customer="Janet"),
            _order(5, datetime(2025, 2, 3, 12, 0), 10, 5, customer="Bob", bid=2),
        ]

    # ---------- Windows ----------

    def test_bucket_window_edges(self):
        start, end = report.bucket_window("daily", date(2025, 1, 1))
        self.assertEqual(start, datetime(2025, 1, 1, 0, 0, 0))
        self.assertEqual(end.date(), date(2025, 1, 1))
        self.assertEqual((end.hour, end.minute, end.second), (23, 59, 59))

        start, end = report.bucket_window("monthly", date(2024, 2, 10))
        self.assertEqual((start.day, end.day), (1, 29))

        start, end = report.bucket_window("yearly", date(2025, 6, 1))
        self.assertEqual((start.date(), end.date()), (date(2025, 1, 1), date(2025, 12, 31)))

        with self.assertRaises(ValueError):
            report.bucket_window("weekly", date(2025, 1, 1))

    def test_daily_filter_is_inclusive_at_midnight(self):
        day = report.filter_orders(self.orders, bucket="daily", ref=date(2025, 1, 1))
        self.assertEqual([o.ono for o in day], [2, 3])

        eve = report.filter_orders(self.orders, bucket="daily", ref=date(2024, 12, 31))
        self.assertEqual([o.ono for o in eve], [1])

    def test_monthly_and_yearly_filters(self):
        jan = report.filter_orders(self.orders, bucket="monthly", ref=date(2025, 1, 20))
        self.assertEqual([o.ono for o in jan], [2, 3, 4])

        year = report.filter_orders(self.orders, bucket="yearly", ref=date(2025, 3, 1))
        self.assertEqual([o.ono for o in year], [2, 3, 4, 5])

    def test_text_and_branch_filters(self):
        by_name = report.filter_orders(self.orders, "jan", bucket=None)
        self.assertEqual([o.ono for o in by_name], [1, 3, 4])

        by_number = report.filter_orders(self.orders, "5", bucket=None)
        self.assertEqual([o.ono for o in by_number], [5])

        harbor = report.filter_orders(self.orders, bucket=None, bid=2)
        self.assertEqual([o.ono for o in harbor], [3, 5])

    # ---------- Aggregation ----------

    def test_aggregate_daily_labels_and_order(self):
        periods = report.aggregate(self.orders, "daily")
        self.assertEqual(
            [p.label for p in periods], ["Dec 31", "Jan 01", "Jan 15", "Feb 03"]
        )
        jan1 = periods[1]
        self.assertEqual(jan1.orders, 2)
        self.assertAlmostEqual(jan1.sales, 70)
        self.assertAlmostEqual(jan1.profit, -10)
        self.assertEqual(jan1.negative_profit_orders, 1)

    def test_same_day_in_different_years_stays_apart(self):
        orders = [
            _order(10, datetime(2025, 1, 5, 10, 0), 20, 10),
            _order(11, datetime(2024, 1, 5, 10, 0), 10, 5),
        ]
        periods = report.aggregate(orders, "daily")
        self.assertEqual(
            [(p.label, p.orders, p.sales) for p in periods],
            [("Jan 05", 1, 10), ("Jan 05", 1, 20)],
        )
        self.assertEqual(
            [p.first_seen.year for p in periods], [2024, 2025]
        )

        # the chart reads the chosen window, so only one of them shows
        window = report.filter_orders(orders, "", "daily", date(2025, 1, 5))
        periods = report.aggregate(window, "daily")
        self.assertEqual([(p.orders, p.sales) for p in periods], [(1, 20)])

    def test_period_start(self):
        when = datetime(2025, 3, 17, 15, 30)
        self.assertEqual(report.period_start(when, "daily"), date(2025, 3, 17))
        self.assertEqual(report.period_start(when, "monthly"), date(2025, 3, 1))
        self.assertEqual(report.period_start(when, "yearly"), date(2025, 1, 1))
        with self.assertRaises(ValueError):
            report.period_start(when, "weekly")

    def test_aggregate_monthly_is_chronological(self):
        periods = report.aggregate(reversed(self.orders), "monthly")
        self.assertEqual([p.label for p in periods], ["Dec 2024", "Jan 2025", "Feb 2025"])
        self.assertEqual([p.orders for p in periods], [1, 3, 1])

    def test_aggregate_yearly(self):
        periods = report.aggregate(self.orders, "yearly")
        self.assertEqual([p.label for p in periods], ["2024", "2025"])
        self.assertAlmostEqual(periods[1].sales, 120)

    def test_summarize(self):
        summary = report.summarize(self.orders)
        self.assertAlmostEqual(summary.sales, 220)
        self.assertAlmostEqual(summary.cost, 175)
        self.assertAlmostEqual(summary.profit, 45)
        self.assertAlmostEqual(summary.margin, 45 / 220 * 100)
        self.assertEqual(summary.orders, 5)
        self.assertEqual(summary.negative_profit_orders, 1)

        empty = report.summarize([])
        self.assertEqual((empty.sales, empty.margin, empty.orders), (0, 0.0, 0))

    def test_from_order_defaults(self):
        legacy = Order(
            ono=7,
            customer_name="",
            bid=1,
            uid=None,
            items=(OrderItem(101, "notebook a5", 1, 2.5, 1.2, 1.2, 1.3),),
            total=2.5,
            total_cost=None,
            total_profit=None,
            profit_margin=None,
            payment_method="Cash",
            created_at=datetime(2025, 1, 1),
        )
        wrapped = report.from_order(legacy)
        self.assertEqual(wrapped.customer_name, report.WALK_IN)
        self.assertEqual((wrapped.total_cost, wrapped.total_profit), (0.0, 0.0))
        self.assertFalse(wrapped.negative_profit)


class ReportLoadTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        db_database.DB_PATH = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database.SEED_DEMO = True
        db_database._initialized = False

    def tearDown(self):
        self.temp_dir.cleanup()

    async def test_load_is_branch_scoped_for_staff(self):
        for bid, pid in [(1, 101), (2, 201)]:
            await crud.commit_order(
                bid=bid,
                uid=None,
                customer_name="",
                payment_method="Cash",
                items=[OrderItem(pid, "notebook a5", 1, 2.5, 1.2, 1.2, 1.3)],
                total=2.5,
                total_cost=1.2,
                total_profit=1.3,
                profit_margin=52.0,
            )

        self.assertEqual(len(await report.load(ADMIN)), 2)
        harbor = await report.load(CLERK_HARBOR)
        self.assertEqual([o.bid for o in harbor], [2])
        self.assertEqual(harbor[0].customer_name, report.WALK_IN)
        self.assertEqual(len(harbor[0].items), 1)


if __name__ == "__main__":
    unittest.main()
