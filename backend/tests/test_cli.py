"""
Flask CLI command groups.
"""

from salesdesk.models import CommunicationType, PaymentMethod, PrimRate, User


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0, result.output
    assert "PASS System initialized" in result.output
    assert db_session.query(CommunicationType).count() == 5
    assert db_session.query(PaymentMethod).count() == 4
    assert db_session.query(PrimRate).filter_by(is_active=True).one().rate == 1.0

    again = runner.invoke(args=["system", "init"])
    assert again.exit_code == 0
    assert "SKIP Communication types already exist" in again.output
    assert "SKIP Active prim rate already configured" in again.output
    assert db_session.query(CommunicationType).count() == 5


def test_users_create_and_list(app, db_session, setup_roles):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "users", "create",
        "--email", "Cli@Example.com",
        "--password", "Password123!",
        "--first-name", "Cem",
        "--last-name", "Kural",
        "--role", "admin",
    ])
    assert "PASS Created user: Cem Kural (cli@example.com) with role 'admin'" in result.output
    assert db_session.query(User).filter_by(email="cli@example.com").one().is_approved is True

    duplicate = runner.invoke(args=[
        "users", "create",
        "--email", "cli@example.com",
        "--password", "Password123!",
        "--first-name", "Cem",
        "--last-name", "Kural",
    ])
    assert "FAIL" in duplicate.output

    listing = runner.invoke(args=["users", "list"])
    assert "cli@example.com" in listing.output
    assert "active" in listing.output


def test_users_create_weak_password(app, setup_roles):
    result = app.test_cli_runner().invoke(args=[
        "users", "create",
        "--email", "weak@example.com",
        "--password", "123",
        "--first-name", "Zayıf",
        "--last-name", "Şifre",
    ])
    assert "FAIL Password validation failed" in result.output


def test_penalty_check_reports_skip(app, db_session):
    result = app.test_cli_runner().invoke(args=["penalties", "check-daily", "--date", "2023-05-02"])
    assert result.exit_code == 0
    assert result.output.startswith("SKIP 2023-05-02")


def test_penalty_check_runs(app, comm_year, salesperson):
    result = app.test_cli_runner().invoke(args=["penalties", "check-daily", "--date", "2024-03-04"])
    assert "PASS 2024-03-04: checked 1 users, penalized 1, deactivated 0" in result.output


def test_penalty_check_bad_date(app, db_session):
    result = app.test_cli_runner().invoke(args=["penalties", "check-daily", "--date", "dün"])
    assert result.output.startswith("FAIL")


def test_backups_clean(app, db_session):
    result = app.test_cli_runner().invoke(args=["backups", "clean", "--days", "30"])
    assert "Deactivated 0 old backups." in result.output

    result = app.test_cli_runner().invoke(args=["backups", "clean", "--days", "0"])
    assert "FAIL" in result.output
