"""
Backups (create, list, download, restore, delete, retention) and the
historical-year migration into daily communication records.
"""

import json
from datetime import timedelta

import pytest

from salesdesk.models import Backup, CommunicationRecord, CommunicationYear, Sale
from salesdesk.services import backup_service
from salesdesk.services.backup_service import BackupError
from salesdesk.time_utils import utcnow
from conftest import sale_payload


@pytest.fixture
def one_sale(client, prim_rate, salesperson_headers):
    return client.post("/api/sales", json=sale_payload(), headers=salesperson_headers).json["sale"]


def _backup(client, headers, kind="sales"):
    return client.post("/api/sales-import/create-backup", json={"type": kind}, headers=headers)


class TestBackups:

    def test_create_and_list(self, client, one_sale, admin_headers):
        resp = _backup(client, admin_headers)
        assert resp.status_code == 201
        backup = resp.json["backup"]
        assert backup["type"] == "manual"
        assert backup["record_count"] == 1
        assert backup["metadata"]["kind"] == "sales"
        assert backup["filename"].startswith("manual_")

        listed = client.get("/api/sales-import/backups", headers=admin_headers).json
        assert [b["filename"] for b in listed["backups"]] == [backup["filename"]]
        assert client.get("/api/sales-import/backups?type=rollback", headers=admin_headers).json["count"] == 0

    def test_invalid_or_empty_kind(self, client, admin_headers):
        assert _backup(client, admin_headers, kind="users").status_code == 400
        assert _backup(client, admin_headers, kind="communications").status_code == 400

    def test_download(self, client, one_sale, admin_headers):
        filename = _backup(client, admin_headers).json["backup"]["filename"]
        resp = client.get(f"/api/sales-import/download/{filename}", headers=admin_headers)
        assert resp.status_code == 200
        payload = json.loads(resp.data)
        assert payload["type"] == "manual"
        assert payload["count"] == 1
        assert payload["data"][0]["contract_no"] == "SZL-001"

    def test_restore_brings_back_deleted_sale(self, client, db_session, one_sale, admin_headers):
        filename = _backup(client, admin_headers).json["backup"]["filename"]
        assert client.delete(f"/api/sales/{one_sale['id']}", headers=admin_headers).status_code == 200

        unconfirmed = client.post(f"/api/sales-import/restore/{filename}", json={}, headers=admin_headers)
        assert unconfirmed.status_code == 400

        resp = client.post(
            f"/api/sales-import/restore/{filename}", json={"confirm_restore": True}, headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.json["restored_records"] == 1
        assert resp.json["success_rate"] == 100
        assert resp.json["pre_restore_backup"] is None

        sale = db_session.query(Sale).filter_by(contract_no="SZL-001").one()
        assert sale.prim_amount == 900

    def test_restore_overwrites_and_backs_up_current(self, client, db_session, one_sale, admin_headers):
        filename = _backup(client, admin_headers).json["backup"]["filename"]
        client.put(f"/api/sales/{one_sale['id']}/notes", json={"notes": "Sonradan eklendi"}, headers=admin_headers)

        resp = client.post(
            f"/api/sales-import/restore/{filename}", json={"confirm_restore": True}, headers=admin_headers
        )
        assert resp.json["pre_restore_backup"].startswith("pre-restore_")

        db_session.expire_all()
        assert db_session.query(Sale).count() == 1
        assert db_session.query(Sale).one().notes is None

    def test_bad_filename(self, client, admin_headers):
        resp = client.get("/api/sales-import/download/bad..name.json", headers=admin_headers)
        assert resp.status_code == 400
        resp = client.get("/api/sales-import/download/missing.json", headers=admin_headers)
        assert resp.status_code == 404

    def test_soft_delete(self, client, db_session, one_sale, admin_headers):
        filename = _backup(client, admin_headers).json["backup"]["filename"]
        assert client.delete(f"/api/sales-import/backup/{filename}", headers=admin_headers).status_code == 200
        assert client.get("/api/sales-import/backups", headers=admin_headers).json["count"] == 0
        # the row stays for audit
        assert db_session.query(Backup).filter_by(filename=filename).one().is_active is False
        assert client.delete(f"/api/sales-import/backup/{filename}", headers=admin_headers).status_code == 404

    def test_clean_old_backups(self, client, db_session, one_sale, admin_headers):
        filename = _backup(client, admin_headers).json["backup"]["filename"]
        _backup(client, admin_headers)
        old = db_session.query(Backup).filter_by(filename=filename).one()
        old.created_at = utcnow() - timedelta(days=40)
        db_session.commit()

        assert backup_service.clean_old_backups(30) == 1
        assert client.get("/api/sales-import/backups", headers=admin_headers).json["count"] == 1

        with pytest.raises(BackupError):
            backup_service.clean_old_backups(0)

    def test_salesperson_cannot_manage_backups(self, client, salesperson_headers):
        assert client.get("/api/sales-import/backups", headers=salesperson_headers).status_code == 403


@pytest.fixture
def historical_year(db_session, admin, salesperson):
    year = CommunicationYear(
        year=2022,
        type="historical",
        is_active=False,
        yearly_communication_data={
            str(salesperson.id): {"callIncoming": 5, "meetingNewCustomer": 2},
            "9999": {"callIncoming": 1},
        },
        yearly_sales_data={str(salesperson.id): {"totalSales": 3}},
        created_by_user_id=admin.id,
    )
    db_session.add(year)
    db_session.commit()
    return year


class TestHistoricalMigration:

    def test_historical_years(self, client, historical_year, admin_headers):
        resp = client.get("/api/migration/historical-years", headers=admin_headers)
        assert resp.status_code == 200
        row = resp.json["years"][0]
        assert row["year"] == 2022
        assert row["has_data"] is True
        assert row["communication_users_count"] == 2
        assert row["already_migrated"] is False

    def test_dry_run_writes_nothing(self, client, db_session, historical_year, admin_headers):
        resp = client.post("/api/migration/historical-to-daily", json={"years": [2022]}, headers=admin_headers)
        assert resp.status_code == 200
        results = resp.json["results"]
        assert results["dry_run"] is True
        assert 1 <= results["total_communication_records"] <= 7
        assert results["processed_years"][0]["skipped_users"] == ["9999"]
        assert db_session.query(CommunicationRecord).count() == 0

    def test_migration_preserves_totals(self, client, db_session, historical_year, salesperson, admin_headers):
        resp = client.post(
            "/api/migration/historical-to-daily", json={"years": [2022], "dry_run": False}, headers=admin_headers
        )
        assert resp.status_code == 200
        records = db_session.query(CommunicationRecord).filter_by(salesperson_id=salesperson.id).all()
        assert len(records) == resp.json["results"]["total_communication_records"]
        assert sum(r.call_incoming for r in records) == 5
        assert sum(r.meeting_new_customer for r in records) == 2
        assert all(r.is_historical_migration and r.year == 2022 for r in records)

        years = client.get("/api/migration/historical-years", headers=admin_headers).json["years"]
        assert years[0]["already_migrated"] is True

    def test_rerun_needs_force(self, client, db_session, historical_year, admin_headers):
        body = {"years": [2022], "dry_run": False}
        client.post("/api/migration/historical-to-daily", json=body, headers=admin_headers)
        migrated = db_session.query(CommunicationRecord).count()

        again = client.post("/api/migration/historical-to-daily", json=body, headers=admin_headers).json["results"]
        assert again["processed_years"] == []
        assert "already migrated" in again["errors"][0]

        forced = client.post(
            "/api/migration/historical-to-daily", json={**body, "force": True}, headers=admin_headers
        ).json["results"]
        assert forced["processed_years"][0]["replaced_records"] == migrated
        db_session.expire_all()
        assert db_session.query(CommunicationRecord).count() == forced["total_communication_records"]

    @pytest.mark.parametrize(
        "value, message",
        [(10**9, "above the limit"), (2.7, "must be an integer"), (True, "must be an integer")],
    )
    def test_bad_yearly_total_fails_only_its_year(
        self, client, db_session, historical_year, admin, salesperson, admin_headers, value, message
    ):
        db_session.add(CommunicationYear(
            year=2021,
            type="historical",
            is_active=False,
            yearly_communication_data={str(salesperson.id): {"callIncoming": value}},
            created_by_user_id=admin.id,
        ))
        db_session.commit()

        resp = client.post(
            "/api/migration/historical-to-daily", json={"years": [2021, 2022], "dry_run": False}, headers=admin_headers
        )
        assert resp.status_code == 200
        results = resp.json["results"]
        assert len(results["errors"]) == 1
        assert results["errors"][0].startswith("Year 2021")
        assert message in results["errors"][0]
        assert [y["year"] for y in results["processed_years"]] == [2022]
        assert db_session.query(CommunicationRecord).filter_by(year=2021).count() == 0

    def test_unknown_year_and_bad_body(self, client, admin_headers):
        resp = client.post("/api/migration/historical-to-daily", json={"years": [1999]}, headers=admin_headers)
        assert resp.json["results"]["errors"] == ["Year 1999: no data found"]
        assert client.post(
            "/api/migration/historical-to-daily", json={"years": []}, headers=admin_headers
        ).status_code == 400
        assert client.post(
            "/api/migration/historical-to-daily", json={"years": ["iki bin"]}, headers=admin_headers
        ).status_code == 400
