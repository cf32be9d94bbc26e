"""
Sale lifecycle: creation with prim, visibility, edits, cancel/restore,
transfer, kapora conversion, modifications, bulk prim status and export.
"""

from datetime import timedelta
from io import BytesIO

import pytest
from openpyxl import load_workbook

from salesdesk.models import PrimTransaction, Sale
from salesdesk.models.prims import TX_CANCELLED, TX_DEDUCTION, TX_EARNING, TX_TRANSFER_IN, TX_TRANSFER_OUT
from salesdesk.services import prim_service
from salesdesk.time_utils import today
from conftest import sale_payload


def _create(client, headers, **overrides):
    return client.post("/api/sales", json=sale_payload(**overrides), headers=headers)


def _live_transactions(db_session, sale_id):
    return (
        db_session.query(PrimTransaction)
        .filter(PrimTransaction.sale_id == sale_id, PrimTransaction.status != TX_CANCELLED)
        .order_by(PrimTransaction.id)
        .all()
    )


class TestCreateSale:

    def test_prim_uses_lowest_price(self, client, db_session, prim_rate, salesperson_headers):
        resp = _create(client, salesperson_headers)
        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["discounted_list_price"] == 90000
        assert sale["base_prim_price"] == 90000
        assert sale["prim_rate"] == 1
        assert sale["prim_amount"] == 900
        assert sale["prim_status"] == "ödenmedi"
        assert sale["prim_period"]["name"] == "Mart 2024"

        txs = _live_transactions(db_session, sale["id"])
        assert [(t.transaction_type, t.amount) for t in txs] == [(TX_EARNING, 900)]

    def test_activity_price_wins_when_lower(self, client, prim_rate, salesperson_headers):
        resp = _create(client, salesperson_headers, discount_rate=0, activity_sale_price=80000)
        assert resp.json["sale"]["base_prim_price"] == 80000
        assert resp.json["sale"]["prim_amount"] == 800

    def test_requires_active_rate(self, client, salesperson_headers):
        resp = _create(client, salesperson_headers)
        assert resp.status_code == 400

    def test_duplicate_contract_rejected(self, client, prim_rate, salesperson_headers):
        _create(client, salesperson_headers)
        resp = _create(client, salesperson_headers)
        assert resp.status_code == 400
        assert "contract" in resp.json["message"]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"customer_name": ""},
            {"contract_no": "  "},
            {"sale_date": None},
            {"sale_date": "15.03.2024"},
            {"list_price": None},
            {"list_price": -5},
            {"discount_rate": 150},
            {"phone": "abc"},
            {"entry_date": "32/01"},
            {"sale_type": "unknown-type"},
        ],
    )
    def test_validation(self, client, prim_rate, salesperson_headers, overrides):
        resp = _create(client, salesperson_headers, **overrides)
        assert resp.status_code == 400

    def test_kapora_has_no_prim(self, client, db_session, prim_rate, salesperson_headers):
        resp = _create(
            client, salesperson_headers, sale_type="kapora", sale_date=None, kapora_date="2024-04-01"
        )
        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["prim_amount"] == 0
        assert sale["prim_period"] is None
        assert _live_transactions(db_session, sale["id"]) == []


class TestVisibility:

    def test_salesperson_sees_only_own_sales(
        self, client, prim_rate, salesperson_headers, other_salesperson_headers
    ):
        own_id = _create(client, salesperson_headers).json["sale"]["id"]
        other_id = _create(client, other_salesperson_headers, contract_no="SZL-002").json["sale"]["id"]

        listing = client.get("/api/sales", headers=salesperson_headers).json
        assert [s["id"] for s in listing["sales"]] == [own_id]
        assert listing["pagination"]["total"] == 1

        assert client.get(f"/api/sales/{other_id}", headers=salesperson_headers).status_code == 403

    def test_visitor_sees_all(self, client, prim_rate, salesperson_headers, visitor_headers):
        _create(client, salesperson_headers)
        assert client.get("/api/sales", headers=visitor_headers).json["pagination"]["total"] == 1

    def test_search_and_sort(self, client, prim_rate, admin_headers):
        _create(client, admin_headers, customer_name="Burak", contract_no="B-1", sale_date="2024-01-10")
        _create(client, admin_headers, customer_name="Ayşe", contract_no="A-1", sale_date="2024-02-10")

        resp = client.get("/api/sales?search=bur", headers=admin_headers)
        assert [s["contract_no"] for s in resp.json["sales"]] == ["B-1"]

        resp = client.get("/api/sales?sort_by=sale_date&sort_order=asc", headers=admin_headers)
        assert [s["contract_no"] for s in resp.json["sales"]] == ["B-1", "A-1"]

    def test_invalid_sort_field(self, client, admin_headers):
        resp = client.get("/api/sales?sort_by=password", headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_sale_is_404(self, client, admin_headers):
        assert client.get("/api/sales/4242", headers=admin_headers).status_code == 404


class TestUpdateSale:

    def test_price_change_rebooks_earning(self, client, db_session, prim_rate, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        resp = client.put(
            f"/api/sales/{sale_id}",
            json={"activity_sale_price": 50000},
            headers=salesperson_headers,
        )
        assert resp.status_code == 200
        assert resp.json["sale"]["prim_amount"] == 500

        txs = _live_transactions(db_session, sale_id)
        assert [(t.transaction_type, t.amount) for t in txs] == [(TX_EARNING, 500)]

    def test_price_change_refused_when_paid(self, client, prim_rate, admin_headers, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        client.put(f"/api/sales/{sale_id}/prim-status", json={"prim_status": "ödendi"}, headers=admin_headers)
        resp = client.put(f"/api/sales/{sale_id}", json={"list_price": 1}, headers=salesperson_headers)
        assert resp.status_code == 400

        resp = client.put(
            f"/api/sales/{sale_id}/modify",
            json={"modification_type": "price_decrease", "new_list_price": 1, "reason": "İndirim"},
            headers=salesperson_headers,
        )
        assert resp.status_code == 400

    def test_override_edits_paid_sale(self, client, db_session, prim_rate, admin_headers, salesperson, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        client.put(f"/api/sales/{sale_id}/prim-status", json={"prim_status": "ödendi"}, headers=admin_headers)

        resp = client.put(f"/api/sales/{sale_id}", json={"activity_sale_price": 50000}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["sale"]["prim_amount"] == 500
        assert resp.json["sale"]["prim_status"] == "ödendi"
        assert prim_service.sale_ledger_total(sale_id, salesperson.id) == 500

    def test_cannot_edit_others_sale(self, client, prim_rate, salesperson_headers, other_salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        resp = client.put(f"/api/sales/{sale_id}", json={"customer_name": "X"}, headers=other_salesperson_headers)
        assert resp.status_code == 403


class TestCancelRestore:

    def test_cancel_books_deduction(self, client, db_session, prim_rate, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        resp = client.put(f"/api/sales/{sale_id}/cancel", headers=salesperson_headers)
        assert resp.status_code == 200
        assert resp.json["sale"]["status"] == "iptal"
        assert resp.json["sale"]["cancelled_at"]

        types = [(t.transaction_type, t.amount) for t in _live_transactions(db_session, sale_id)]
        assert types == [(TX_EARNING, 900), (TX_DEDUCTION, -900)]

    def test_double_cancel_rejected(self, client, prim_rate, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        client.put(f"/api/sales/{sale_id}/cancel", headers=salesperson_headers)
        assert client.put(f"/api/sales/{sale_id}/cancel", headers=salesperson_headers).status_code == 400

    def test_restore_books_new_earning(self, client, db_session, prim_rate, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        client.put(f"/api/sales/{sale_id}/cancel", headers=salesperson_headers)
        resp = client.put(f"/api/sales/{sale_id}/restore", headers=salesperson_headers)
        assert resp.status_code == 200
        assert resp.json["sale"]["status"] == "aktif"
        assert resp.json["sale"]["cancelled_at"] is None

        total = sum(t.amount for t in _live_transactions(db_session, sale_id))
        assert total == 900

    def test_restore_active_sale_rejected(self, client, prim_rate, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        assert client.put(f"/api/sales/{sale_id}/restore", headers=salesperson_headers).status_code == 400


class TestTransfer:

    def test_transfer_moves_prim(self, client, db_session, prim_rate, admin_headers, salesperson, other_salesperson):
        sale_id = _create(client, admin_headers).json["sale"]["id"]
        db_session.get(Sale, sale_id).salesperson_id = salesperson.id
        db_session.commit()

        resp = client.put(
            f"/api/sales/{sale_id}/transfer",
            json={"new_salesperson_id": other_salesperson.id, "reason": "Bölge değişikliği"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        sale = resp.json["sale"]
        assert sale["salesperson"]["id"] == other_salesperson.id
        assert sale["transfer_history"][0]["from_salesperson_id"] == salesperson.id
        assert sale["transfer_history"][0]["reason"] == "Bölge değişikliği"

        txs = _live_transactions(db_session, sale_id)
        moves = [(t.transaction_type, t.salesperson_id, t.amount) for t in txs[1:]]
        assert moves == [
            (TX_TRANSFER_OUT, salesperson.id, -900),
            (TX_TRANSFER_IN, other_salesperson.id, 900),
        ]

    def test_transfer_to_admin_rejected(self, client, prim_rate, admin, admin_headers, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        resp = client.put(
            f"/api/sales/{sale_id}/transfer", json={"new_salesperson_id": admin.id}, headers=admin_headers
        )
        assert resp.status_code == 404

    def test_transfer_to_same_owner_rejected(self, client, prim_rate, admin_headers, salesperson, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        resp = client.put(
            f"/api/sales/{sale_id}/transfer", json={"new_salesperson_id": salesperson.id}, headers=admin_headers
        )
        assert resp.status_code == 400


class TestKapora:

    def test_convert_to_sale(self, client, db_session, prim_rate, salesperson_headers):
        sale_id = _create(
            client, salesperson_headers, sale_type="kapora", sale_date=None, kapora_date="2024-04-01"
        ).json["sale"]["id"]

        resp = client.put(
            f"/api/sales/{sale_id}/convert-to-sale",
            json={"sale_date": "2024-05-02"},
            headers=salesperson_headers,
        )
        assert resp.status_code == 200
        sale = resp.json["sale"]
        assert sale["sale_type"] == "satis"
        assert sale["prim_amount"] == 900
        assert sale["prim_period"]["name"] == "Mayıs 2024"
        assert len(_live_transactions(db_session, sale_id)) == 1

    def test_convert_requires_kapora(self, client, prim_rate, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        resp = client.put(
            f"/api/sales/{sale_id}/convert-to-sale", json={"sale_date": "2024-05-02"}, headers=salesperson_headers
        )
        assert resp.status_code == 400

    def test_upcoming_entries(self, client, prim_rate, salesperson_headers):
        soon = today() + timedelta(days=3)
        later = today() + timedelta(days=30)
        _create(client, salesperson_headers, sale_type="kapora", sale_date=None,
                kapora_date=soon.isoformat(), contract_no="K-1")
        _create(client, salesperson_headers, sale_type="kapora", sale_date=None,
                kapora_date=later.isoformat(), contract_no="K-2")

        resp = client.get("/api/sales/upcoming-entries?days=7", headers=salesperson_headers)
        assert resp.status_code == 200
        assert resp.json["total_count"] == 1
        assert list(resp.json["grouped_entries"]) == [soon.isoformat()]

    def test_upcoming_days_bounds(self, client, salesperson_headers):
        resp = client.get("/api/sales/upcoming-entries?days=0", headers=salesperson_headers)
        assert resp.status_code == 400


class TestModifyAndNotes:

    def test_modify_records_history(self, client, db_session, prim_rate, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        resp = client.put(
            f"/api/sales/{sale_id}/modify",
            json={
                "modification_type": "price_decrease",
                "new_list_price": 70000,
                "reason": "Kampanya",
            },
            headers=salesperson_headers,
        )
        assert resp.status_code == 200
        sale = resp.json["sale"]
        assert sale["list_price"] == 70000
        assert sale["original_list_price"] == 70000
        assert sale["modification_history"][0]["old_list_price"] == 100000
        assert sale["prim_amount"] == 630

        amounts = [t.amount for t in _live_transactions(db_session, sale_id)]
        assert amounts == [630]

    def test_modify_requires_reason(self, client, prim_rate, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        resp = client.put(
            f"/api/sales/{sale_id}/modify",
            json={"modification_type": "other", "new_list_price": 1},
            headers=salesperson_headers,
        )
        assert resp.status_code == 400

    def test_notes(self, client, prim_rate, salesperson_headers):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        resp = client.put(f"/api/sales/{sale_id}/notes", json={"notes": "Müşteri arayacak"}, headers=salesperson_headers)
        assert resp.json["sale"]["notes"] == "Müşteri arayacak"

        assert client.put(f"/api/sales/{sale_id}/notes", json={"notes": "x" * 1001},
                          headers=salesperson_headers).status_code == 400

        resp = client.delete(f"/api/sales/{sale_id}/notes", headers=salesperson_headers)
        assert resp.json["sale"]["notes"] is None


class TestPrimStatusAndDelete:

    def test_bulk_preview_and_update(self, client, prim_rate, admin_headers):
        _create(client, admin_headers, contract_no="C-1", sale_date="2024-03-01")
        _create(client, admin_headers, contract_no="C-2", sale_date="2024-03-20")
        _create(client, admin_headers, contract_no="C-3", sale_date="2024-04-05")
        filters = {"month": 3, "year": 2024}

        preview = client.post(
            "/api/sales/bulk-prim-status/preview",
            json={"prim_status": "ödendi", "filters": filters},
            headers=admin_headers,
        )
        assert preview.status_code == 200
        assert preview.json["count"] == 2
        assert preview.json["total_prim_amount"] == 1800

        resp = client.put(
            "/api/sales/bulk-prim-status",
            json={"prim_status": "ödendi", "filters": filters},
            headers=admin_headers,
        )
        assert resp.json["affected_count"] == 2

        paid = client.get("/api/sales", query_string={"prim_status": "ödendi"}, headers=admin_headers).json
        assert {s["contract_no"] for s in paid["sales"]} == {"C-1", "C-2"}

    def test_bulk_with_no_match(self, client, prim_rate, admin_headers):
        resp = client.put(
            "/api/sales/bulk-prim-status",
            json={"prim_status": "ödendi", "filters": {"month": 1, "year": 2030}},
            headers=admin_headers,
        )
        assert resp.status_code == 404

    def test_invalid_prim_status(self, client, prim_rate, admin_headers):
        sale_id = _create(client, admin_headers).json["sale"]["id"]
        resp = client.put(f"/api/sales/{sale_id}/prim-status", json={"prim_status": "maybe"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_delete_removes_transactions(self, client, db_session, prim_rate, admin_headers):
        sale_id = _create(client, admin_headers).json["sale"]["id"]
        assert client.delete(f"/api/sales/{sale_id}", headers=admin_headers).status_code == 200
        assert db_session.query(PrimTransaction).filter_by(sale_id=sale_id).count() == 0
        assert client.get(f"/api/sales/{sale_id}", headers=admin_headers).status_code == 404


def _step(client, headers, sale_id, step, other_id):
    if step == "cancel":
        resp = client.put(f"/api/sales/{sale_id}/cancel", headers=headers)
    elif step == "restore":
        resp = client.put(f"/api/sales/{sale_id}/restore", headers=headers)
    elif step == "modify":
        resp = client.put(
            f"/api/sales/{sale_id}/modify",
            json={"modification_type": "price_decrease", "new_list_price": 80000, "reason": "Pazarlık"},
            headers=headers,
        )
    elif step == "transfer":
        resp = client.put(
            f"/api/sales/{sale_id}/transfer",
            json={"new_salesperson_id": other_id, "reason": "Devir"},
            headers=headers,
        )
    elif step == "period":
        period = client.post("/api/prims/periods", json={"month": 4, "year": 2024}, headers=headers).json["period"]
        resp = client.put(
            f"/api/prims/sales/{sale_id}/period", json={"prim_period_id": period["id"]}, headers=headers
        )
    assert resp.status_code == 200, resp.json
    return resp


class TestLedgerChains:
    """After any sequence of lifecycle steps the live ledger nets to the sale's prim."""

    @pytest.mark.parametrize(
        "steps",
        [
            ["cancel", "restore", "modify"],
            ["transfer", "modify"],
            ["transfer", "period"],
            ["modify", "transfer", "period"],
            ["transfer", "cancel", "restore"],
            ["cancel", "restore", "transfer", "modify", "period"],
            ["transfer", "cancel"],
        ],
    )
    def test_ledger_matches_prim(
        self, client, db_session, prim_rate, admin_headers, salesperson, salesperson_headers, other_salesperson, steps
    ):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        for step in steps:
            _step(client, admin_headers, sale_id, step, other_salesperson.id)

        sale = client.get(f"/api/sales/{sale_id}", headers=admin_headers).json["sale"]
        expected = 0 if sale["status"] == "iptal" else sale["prim_amount"]
        owner = sale["salesperson"]["id"]
        former = salesperson.id if owner == other_salesperson.id else other_salesperson.id

        assert prim_service.sale_ledger_total(sale_id) == expected
        assert prim_service.sale_ledger_total(sale_id, owner) == expected
        assert prim_service.sale_ledger_total(sale_id, former) == 0

        booked = [
            (r["salesperson"]["id"], r["prim_period"]["id"], r["total_earnings"])
            for r in prim_service.earnings()
            if r["total_earnings"]
        ]
        if expected:
            assert booked == [(owner, sale["prim_period"]["id"], expected)]
        else:
            assert booked == []

    def test_modify_after_transfer_pays_new_owner_only(
        self, client, db_session, prim_rate, admin_headers, salesperson, salesperson_headers, other_salesperson
    ):
        sale_id = _create(client, salesperson_headers).json["sale"]["id"]
        _step(client, admin_headers, sale_id, "transfer", other_salesperson.id)
        resp = _step(client, admin_headers, sale_id, "modify", other_salesperson.id)

        assert resp.json["sale"]["prim_amount"] == 720
        assert prim_service.sale_ledger_total(sale_id, other_salesperson.id) == 720
        assert prim_service.sale_ledger_total(sale_id, salesperson.id) == 0


class TestExport:

    def test_export_workbook(self, client, prim_rate, admin_headers):
        _create(client, admin_headers)
        resp = client.get("/api/sales/export", headers=admin_headers)
        assert resp.status_code == 200
        wb = load_workbook(BytesIO(resp.data))
        rows = list(wb.active.iter_rows(values_only=True))
        assert rows[0][0] == "Sözleşme No"
        assert rows[1][0] == "SZL-001"
        assert len(rows) == 2
