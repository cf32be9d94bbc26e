import unittest
from datetime import date
from flask import Flask

from salesdesk.extensions import db
from salesdesk.models import PrimTransaction, Sale
from salesdesk.permissions import SALESPERSON_ROLE, ADMIN_ROLE
from salesdesk.services import auth_service, permission_service, prim_service, sales_service
from salesdesk.services.sales_service import SaleError, SaleNotFoundError


class PrimLedgerServiceTests(unittest.TestCase):
    """The net ledger of a sale always equals its prim while it is live and unpaid."""

    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            BCRYPT_ROUNDS=4,
            TESTING=True,
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from salesdesk import models  # noqa: F401
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        auth_service.create_default_roles()
        permission_service.initialize_permissions()
        permission_service.assign_default_role_permissions()
        db.session.commit()

        self.admin = auth_service.create_user("Ada", "Admin", "admin@example.com", "Password123!", role_name=ADMIN_ROLE)
        self.selin = auth_service.create_user("Selin", "Satış", "selin@example.com", "Password123!", role_name=SALESPERSON_ROLE)
        self.omer = auth_service.create_user("Ömer", "Kaya", "omer@example.com", "Password123!", role_name=SALESPERSON_ROLE)
        prim_service.set_rate(1, "Test", self.admin.id)

    def _create(self, **overrides):
        data = {
            "customer_name": "Ahmet Yılmaz",
            "block_no": "A1",
            "apartment_no": "12",
            "period_no": "1",
            "contract_no": "SZL-001",
            "sale_type": "satis",
            "sale_date": "2024-03-15",
            "list_price": 100000,
            "original_list_price": 100000,
            "discount_rate": 10,
            "activity_sale_price": 95000,
        }
        data.update(overrides)
        return sales_service.create_sale(data, self.selin)

    def _net(self, user_id):
        rows = prim_service.earnings(salesperson_id=user_id)
        return round(sum(r["total_earnings"] for r in rows), 2)

    def test_create_books_one_earning(self):
        sale = self._create()
        self.assertEqual(sale.base_prim_price, 90000)
        self.assertEqual(sale.prim_amount, 900)
        self.assertEqual(sale.prim_period.name, "Mart 2024")
        self.assertEqual(self._net(self.selin.id), 900)

    def test_cancel_and_restore_keep_ledger_balanced(self):
        sale = self._create()
        sales_service.cancel_sale(sale.id, self.selin)
        self.assertEqual(self._net(self.selin.id), 0)

        sales_service.restore_sale(sale.id, self.selin)
        self.assertEqual(self._net(self.selin.id), 900)

        with self.assertRaises(SaleError):
            sales_service.restore_sale(sale.id, self.selin)

    def test_transfer_moves_prim(self):
        sale = self._create()
        sale, previous, target = sales_service.transfer_sale(sale.id, self.omer.id, "İzin", self.admin)
        self.assertEqual(previous.id, self.selin.id)
        self.assertEqual(target.id, self.omer.id)
        self.assertEqual(sale.salesperson_id, self.omer.id)
        self.assertEqual(sale.transfer_history[-1]["reason"], "İzin")

        self.assertEqual(self._net(self.selin.id), 0)
        self.assertEqual(self._net(self.omer.id), 900)

        types = sorted(
            tx.transaction_type
            for tx in db.session.query(PrimTransaction).filter_by(sale_id=sale.id).all()
        )
        self.assertEqual(types, sorted(["kazanç", "transfer_giden", "transfer_gelen"]))

    def test_transfer_to_admin_refused(self):
        sale = self._create()
        with self.assertRaises(SaleNotFoundError):
            sales_service.transfer_sale(sale.id, self.admin.id, None, self.admin)

    def test_kapora_has_no_ledger_lines(self):
        sale = self._create(sale_type="kapora", sale_date=None, kapora_date="2024-04-01")
        self.assertEqual(sale.prim_amount, 0)
        self.assertIsNone(sale.prim_period_id)
        self.assertEqual(db.session.query(PrimTransaction).count(), 0)

    def test_paid_sale_cancel_books_nothing(self):
        sale = self._create()
        sales_service.set_prim_status(sale.id, "ödendi", self.admin)
        sales_service.cancel_sale(sale.id, self.admin)
        self.assertEqual(self._net(self.selin.id), 900)

    def test_change_period_rebooks(self):
        sale = self._create()
        april = prim_service.create_period(4, 2024, None, self.admin.id)
        prim_service.change_sale_period(sale.id, april.id, self.admin.id)

        rows = prim_service.earnings(salesperson_id=self.selin.id)
        self.assertEqual([(r["prim_period"]["name"], r["total_earnings"]) for r in rows], [("Nisan 2024", 900)])

    def test_zero_rate_books_nothing(self):
        prim_service.set_rate(0, "Kapalı", self.admin.id)
        sale = self._create(contract_no="SZL-002")
        self.assertEqual(sale.prim_amount, 0)
        self.assertEqual(db.session.query(Sale).count(), 1)

    def _apply(self, sale, step):
        if step == "cancel":
            sales_service.cancel_sale(sale.id, self.admin)
        elif step == "restore":
            sales_service.restore_sale(sale.id, self.admin)
        elif step == "modify":
            sales_service.modify_sale(
                sale.id,
                {"modification_type": "price_decrease", "new_list_price": 80000, "reason": "Pazarlık"},
                self.admin,
            )
        elif step == "transfer":
            owner = self.omer if sale.salesperson_id == self.selin.id else self.selin
            sales_service.transfer_sale(sale.id, owner.id, None, self.admin)
        elif step == "period":
            period = prim_service.get_or_create_period(date(2024, 4, 1), self.admin.id)
            prim_service.change_sale_period(sale.id, period.id, self.admin.id)

    def test_chained_steps_keep_ledger_equal_to_prim(self):
        chains = [
            ("cancel", "restore", "modify"),
            ("transfer", "modify"),
            ("transfer", "period"),
            ("transfer", "transfer", "modify"),
            ("modify", "cancel", "restore", "transfer"),
        ]
        for number, steps in enumerate(chains, start=1):
            with self.subTest(steps=steps):
                sale = self._create(contract_no=f"ZN-{number}")
                for step in steps:
                    self._apply(sale, step)
                db.session.refresh(sale)

                expected = 0 if sale.is_cancelled else sale.prim_amount
                other = self.omer if sale.salesperson_id == self.selin.id else self.selin
                self.assertEqual(prim_service.sale_ledger_total(sale.id), expected)
                self.assertEqual(prim_service.sale_ledger_total(sale.id, sale.salesperson_id), expected)
                self.assertEqual(prim_service.sale_ledger_total(sale.id, other.id), 0)

    def test_reset_cancels_every_line_type(self):
        sale = self._create()
        sales_service.transfer_sale(sale.id, self.omer.id, None, self.admin)
        sales_service.cancel_sale(sale.id, self.admin)

        self.assertEqual(prim_service.reset_sale_ledger(sale), 4)
        db.session.commit()
        live = db.session.query(PrimTransaction).filter(
            PrimTransaction.sale_id == sale.id, PrimTransaction.status != "iptal"
        ).count()
        self.assertEqual(live, 0)
