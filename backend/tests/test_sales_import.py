"""
Excel sale import, import rollback and the import template.
"""

from datetime import date
from io import BytesIO

import pytest
from openpyxl import Workbook, load_workbook

from salesdesk.models import Backup, PrimTransaction, Sale
from salesdesk.services import import_service, prim_service
from conftest import sale_payload


HEADERS = [
    "customerName", "phone", "blockNo", "apartmentNo", "periodNo", "saleType", "contractNo",
    "saleDate", "entryDate", "exitDate", "listPrice", "originalListPrice", "discountRate",
    "activitySalePrice", "paymentType", "primStatus", "status", "salesperson", "notes",
]


def _row(**overrides) -> dict:
    row = {
        "customerName": "Ayşe Kara",
        "phone": "0533 000 00 00",
        "blockNo": "B2",
        "apartmentNo": "7",
        "periodNo": "2",
        "saleType": "satis",
        "contractNo": "IMP-001",
        "saleDate": "2024-03-10",
        "entryDate": "20/12",
        "exitDate": "05/01",
        "listPrice": 100000,
        "originalListPrice": 100000,
        "discountRate": 10,
        "activitySalePrice": 95000,
        "paymentType": "Nakit",
        "primStatus": "ödenmedi",
        "status": "aktif",
        "salesperson": "selin@example.com",
        "notes": None,
    }
    row.update(overrides)
    return row


def _workbook(rows, headers=HEADERS) -> BytesIO:
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(headers)
    for row in rows:
        sheet.append([row.get(h) for h in headers])
    stream = BytesIO()
    workbook.save(stream)
    stream.seek(0)
    return stream


def _upload(client, headers, rows, dry_run=True, overwrite=False, filename="satislar.xlsx"):
    return client.post(
        "/api/sales-import/upload",
        data={
            "salesFile": (_workbook(rows), filename),
            "dryRun": "true" if dry_run else "false",
            "overwriteExisting": "true" if overwrite else "false",
        },
        content_type="multipart/form-data",
        headers=headers,
    )


class TestDateParsing:

    def test_formats(self):
        assert import_service.parse_cell_date("2024-03-10") == (date(2024, 3, 10), True)
        assert import_service.parse_cell_date("10.03.2024")[0].isoformat() == "2024-03-10"
        assert import_service.parse_cell_date(45361)[0].isoformat() == "2024-03-10"
        assert import_service.parse_cell_date("21/08", default_year=2023) == (date(2023, 8, 21), False)

    @pytest.mark.parametrize("value", ["yarın", "", True, -5, 0, "1/2/3/4", "20210315", 3000000, 1e300])
    def test_rejects(self, value):
        with pytest.raises(ValueError):
            import_service.parse_cell_date(value)


class TestUpload:

    def test_dry_run_writes_nothing(self, client, db_session, prim_rate, salesperson, admin_headers):
        resp = _upload(client, admin_headers, [_row(), _row(contractNo="IMP-002")])
        assert resp.status_code == 200
        assert resp.json["success"] is True
        assert resp.json["results"]["dry_run"] is True
        assert resp.json["results"]["valid_rows"] == 2
        assert db_session.query(Sale).count() == 0

    def test_import_books_prim(self, client, db_session, prim_rate, salesperson, admin_headers):
        resp = _upload(client, admin_headers, [_row()], dry_run=False)
        assert resp.status_code == 200
        assert resp.json["results"]["imported_rows"] == 1

        sale = db_session.query(Sale).filter_by(contract_no="IMP-001").one()
        assert sale.is_imported is True
        assert sale.salesperson_id == salesperson.id
        assert sale.prim_amount == 900
        assert sale.prim_period.name == "Mart 2024"
        assert (sale.entry_date, sale.exit_date) == ("20/12", "05/01")
        assert db_session.query(PrimTransaction).filter_by(sale_id=sale.id).count() == 1

    def test_turkish_headers_and_unknown_salesperson(self, client, db_session, prim_rate, admin, admin_headers):
        titles = [dict(import_service.COLUMNS)[h] for h in HEADERS]
        row = _row(salesperson="Bilinmeyen Kişi", primStatus="ödendi")
        resp = client.post(
            "/api/sales-import/upload",
            data={"salesFile": (_workbook([dict(zip(titles, (row[h] for h in HEADERS)))], headers=titles), "tr.xlsx"),
                  "dryRun": "false"},
            content_type="multipart/form-data",
            headers=admin_headers,
        )
        assert resp.json["results"]["imported_rows"] == 1
        assert any("Bilinmeyen" in w for w in resp.json["results"]["warnings"])

        sale = db_session.query(Sale).one()
        assert sale.salesperson_id == admin.id
        # paid prims are not booked again
        assert db_session.query(PrimTransaction).count() == 0

    def test_invalid_rows_reported(self, client, prim_rate, salesperson, admin_headers):
        rows = [
            _row(customerName=None),
            _row(contractNo="IMP-002", listPrice="çok"),
            _row(contractNo="IMP-003", saleType="takas"),
            _row(contractNo="IMP-004", discountRate=150),
        ]
        resp = _upload(client, admin_headers, rows)
        assert resp.json["success"] is False
        results = resp.json["results"]
        assert results["invalid_rows"] == 4
        assert [e["row"] for e in results["errors"]] == [2, 3, 4, 5]

    @pytest.mark.parametrize("sale_date", ["20210315", 3000000])
    def test_out_of_range_date_is_row_error(self, client, db_session, prim_rate, salesperson, admin_headers, sale_date):
        resp = _upload(client, admin_headers, [_row(saleDate=sale_date), _row(contractNo="IMP-002")])
        assert resp.status_code == 200
        results = resp.json["results"]
        assert results["invalid_rows"] == 1
        assert results["valid_rows"] == 1
        assert results["errors"][0]["row"] == 2

    def test_blank_rows_skipped(self, client, prim_rate, salesperson, admin_headers):
        resp = _upload(client, admin_headers, [_row(), _row(customerName=None, blockNo=None)])
        assert resp.json["results"]["skipped_rows"] == 1
        assert resp.json["results"]["valid_rows"] == 1

    def test_duplicates_skipped_unless_overwrite(self, client, db_session, prim_rate, salesperson, admin_headers):
        _upload(client, admin_headers, [_row()], dry_run=False)

        resp = _upload(client, admin_headers, [_row(activitySalePrice=50000)], dry_run=False)
        assert resp.json["results"]["imported_rows"] == 0
        assert resp.json["results"]["skipped_rows"] == 1

        resp = _upload(client, admin_headers, [_row(activitySalePrice=50000)], dry_run=False, overwrite=True)
        assert resp.json["results"]["imported_rows"] == 1

        db_session.expire_all()
        sale = db_session.query(Sale).filter_by(contract_no="IMP-001").one()
        assert sale.prim_amount == 500
        live = (
            db_session.query(PrimTransaction)
            .filter(PrimTransaction.sale_id == sale.id, PrimTransaction.status != "iptal")
            .all()
        )
        assert [tx.amount for tx in live] == [500]
        # existing sales are backed up before each real import
        assert db_session.query(Backup).filter_by(type="sales").count() == 2

    @pytest.mark.parametrize("owner_email", ["selin@example.com", "omer@example.com"])
    def test_overwrite_of_transferred_sale(
        self, client, db_session, prim_rate, salesperson, other_salesperson, admin_headers, owner_email
    ):
        _upload(client, admin_headers, [_row()], dry_run=False)
        sale_id = db_session.query(Sale.id).filter_by(contract_no="IMP-001").scalar()
        resp = client.put(
            f"/api/sales/{sale_id}/transfer",
            json={"new_salesperson_id": other_salesperson.id, "reason": "Devir"},
            headers=admin_headers,
        )
        assert resp.status_code == 200

        resp = _upload(
            client, admin_headers, [_row(activitySalePrice=50000, salesperson=owner_email)],
            dry_run=False, overwrite=True,
        )
        assert resp.json["results"]["imported_rows"] == 1

        db_session.expire_all()
        sale = db_session.get(Sale, sale_id)
        owner = salesperson if owner_email == salesperson.email else other_salesperson
        former = other_salesperson if owner is salesperson else salesperson
        assert sale.salesperson_id == owner.id
        assert sale.prim_amount == 500
        assert prim_service.sale_ledger_total(sale_id) == 500
        assert prim_service.sale_ledger_total(sale_id, owner.id) == 500
        assert prim_service.sale_ledger_total(sale_id, former.id) == 0

    def test_file_type_checked(self, client, admin_headers):
        resp = _upload(client, admin_headers, [_row()], filename="satislar.xls")
        assert resp.status_code == 400
        assert ".xlsx" in resp.json["message"]

        resp = client.post(
            "/api/sales-import/upload",
            data={"salesFile": (BytesIO(b"not a workbook"), "bozuk.xlsx")},
            content_type="multipart/form-data",
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_missing_file(self, client, admin_headers):
        resp = client.post(
            "/api/sales-import/upload", data={}, content_type="multipart/form-data", headers=admin_headers
        )
        assert resp.status_code == 400


class TestRollback:

    def test_requires_confirmation(self, client, admin_headers):
        resp = client.delete("/api/sales-import/rollback", json={"hours": 2}, headers=admin_headers)
        assert resp.status_code == 400

    def test_hours_bounds(self, client, admin_headers):
        resp = client.delete("/api/sales-import/rollback", json={"hours": 72, "confirm": True}, headers=admin_headers)
        assert resp.status_code == 400

    def test_rollback_recent_import(self, client, db_session, prim_rate, salesperson, admin_headers, salesperson_headers):
        client.post("/api/sales", json=sale_payload(contract_no="EL-001"), headers=salesperson_headers)
        _upload(client, admin_headers, [_row(), _row(contractNo="IMP-002")], dry_run=False)

        resp = client.delete("/api/sales-import/rollback", json={"hours": 1, "confirm": True}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["deleted_count"] == 2
        assert resp.json["deleted_transactions"] == 2
        assert resp.json["backup_file"].startswith("rollback_")

        # hand-entered sales stay
        assert [s.contract_no for s in db_session.query(Sale).all()] == ["EL-001"]

    def test_nothing_to_roll_back(self, client, admin_headers):
        resp = client.delete("/api/sales-import/rollback", json={"confirm": True}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["deleted_count"] == 0
        assert resp.json["backup_file"] is None


class TestTemplate:

    def test_template_headers(self, client, admin_headers):
        resp = client.get("/api/sales-import/template", headers=admin_headers)
        assert resp.status_code == 200
        assert import_service.TEMPLATE_FILENAME in resp.headers["Content-Disposition"]

        workbook = load_workbook(BytesIO(resp.data))
        sheet = workbook.active
        assert sheet.title == "Satışlar"
        header = [cell.value for cell in sheet[1]]
        assert header == [key for key, _ in import_service.COLUMNS]
        assert sheet["A2"].value == "Ahmet Yılmaz"
