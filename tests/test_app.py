import pytest

from app import create_app
from models import db
from models.community import Community
from models.user import User
from security.session import verify_session
from tests.helpers import at, make_slot


def test_confirmation_mode_is_required(tmp_path):
    with pytest.raises(RuntimeError):
        create_app({
            "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "x.db"),
            "BOOKING_CONFIRMATION_MODE": None,
        })
    with pytest.raises(RuntimeError):
        create_app({
            "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "x.db"),
            "BOOKING_CONFIRMATION_MODE": "sometimes",
        })


def test_active_booking_scope_is_checked(tmp_path):
    with pytest.raises(RuntimeError):
        create_app({
            "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "x.db"),
            "BOOKING_CONFIRMATION_MODE": "automatic",
            "ONE_ACTIVE_BOOKING_SCOPE": "planet",
        })


def test_store_timeout_reaches_the_driver(app):
    assert app.config["SQLALCHEMY_ENGINE_OPTIONS"]["connect_args"]["timeout"] == 15


def test_community_commands(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["create-community", "qcv", "Quezon Villas", "--address", "QC"])
    assert result.exit_code == 0
    assert "QCV created" in result.output

    bad = runner.invoke(args=["create-community", "Q1", "Nope"])
    assert bad.exit_code != 0

    result = runner.invoke(args=["deactivate-community", "QCV"])
    assert result.exit_code == 0
    with app.app_context():
        community = db.session.get(Community, "QCV")
        assert (community.display_name, community.status) == ("Quezon Villas", "inactive")

    result = runner.invoke(args=["create-community", "QCV", "Quezon Villas"])
    assert "marked active" in result.output


def test_make_admin_and_issue_session(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["make-admin", "u-other"])
    assert result.exit_code == 0
    assert runner.invoke(args=["make-admin", "nobody"]).exit_code != 0

    raw = runner.invoke(args=["issue-session", "u-other"]).output.strip()
    with app.app_context():
        assert db.session.get(User, "u-other").role == "administrator"
        assert verify_session(raw).subject_id == "u-other"


def test_expire_slots_command(app, clock):
    make_slot(app, available_from=at(8), available_until=at(9))
    clock.advance(hours=3)
    result = app.test_cli_runner().invoke(args=["expire-slots"])
    assert result.exit_code == 0
    assert "1 slot(s) expired" in result.output
