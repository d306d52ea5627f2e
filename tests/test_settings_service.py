"""System settings singleton tests."""

from pathlib import Path

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from paylink.core.errors import ValidationError
from paylink.db.base import Base
from paylink.models import AuditLog, SettingsHistory, SystemSettings
from paylink.services import settings_service
from paylink.utils.client import ClientContext

ADMIN_CONTEXT = ClientContext(ip_address="198.51.100.4", user_agent="admin-console")


def _session_factory(tmp_path: Path):
    engine = create_engine(f"sqlite:///{tmp_path / 'settings.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def test_first_read_materializes_defaults(tmp_path: Path) -> None:
    session_local = _session_factory(tmp_path)
    with session_local() as db:
        current = settings_service.get_settings(db)

        assert current.timer_duration == 9
        assert current.static_upi_id is None
        assert current.enabled_upi_apps == {"gpay": True, "phonepe": True, "paytm": True, "bhim": True}
        assert settings_service.get_settings(db).id == current.id
        assert db.scalar(select(func.count(SystemSettings.id))) == 1


def test_partial_update_merges_app_flags(tmp_path: Path) -> None:
    session_local = _session_factory(tmp_path)
    with session_local() as db:
        updated = settings_service.update_settings(
            db,
            {"enabled_upi_apps": {"paytm": False}, "timer_duration": 5},
            updated_by="1",
            context=ADMIN_CONTEXT,
        )

        assert updated.timer_duration == 5
        assert updated.enabled_upi_apps == {"gpay": True, "phonepe": True, "paytm": False, "bhim": True}
        assert settings_service.enabled_apps(updated) == ["gpay", "phonepe", "bhim"]

        history = settings_service.get_settings_history(db)
        assert len(history) == 1
        assert history[0].changes == {
            "timerDuration": {"old": 9, "new": 5},
            "enabledUpiApps": {"paytm": {"old": True, "new": False}},
        }
        assert history[0].ip_address == "198.51.100.4"
        assert history[0].snapshot["timerDuration"] == 5


def test_empty_static_upi_id_clears_override(tmp_path: Path) -> None:
    session_local = _session_factory(tmp_path)
    with session_local() as db:
        settings_service.update_settings(db, {"static_upi_id": " Shop@OKHDFC "}, updated_by="1")
        assert settings_service.get_settings(db).static_upi_id == "shop@okhdfc"

        cleared = settings_service.update_settings(db, {"static_upi_id": ""}, updated_by="1")
        assert cleared.static_upi_id is None


@pytest.mark.parametrize(
    "updates",
    [
        {"timer_duration": 0},
        {"timer_duration": 61},
        {"static_upi_id": "not-a-upi-id"},
        {"enabled_upi_apps": {"whatsapp": True}},
        {"enabled_upi_apps": {"gpay": "yes"}},
        {"theme": "dark"},
    ],
)
def test_invalid_updates_are_rejected_without_side_effects(tmp_path: Path, updates) -> None:
    session_local = _session_factory(tmp_path)
    with session_local() as db:
        with pytest.raises(ValidationError):
            settings_service.update_settings(db, updates, updated_by="1")

        assert db.scalar(select(func.count(SettingsHistory.id))) == 0
        assert settings_service.get_settings(db).timer_duration == 9


def test_reset_restores_defaults_and_keeps_history(tmp_path: Path) -> None:
    session_local = _session_factory(tmp_path)
    with session_local() as db:
        settings_service.update_settings(
            db,
            {"timer_duration": 20, "static_upi_id": "shop@okhdfc", "enabled_upi_apps": {"gpay": False}},
            updated_by="1",
        )
        reset = settings_service.reset_to_defaults(db, updated_by="1", context=ADMIN_CONTEXT)

        assert reset.timer_duration == 9
        assert reset.static_upi_id is None
        assert all(reset.enabled_upi_apps.values())

        history = settings_service.get_settings_history(db)
        assert [entry.change_type for entry in history] == ["reset", "update"]
        assert db.scalar(
            select(func.count(AuditLog.id)).where(AuditLog.action == "settings_updated")
        ) == 2


def test_update_without_changes_still_records_history(tmp_path: Path) -> None:
    session_local = _session_factory(tmp_path)
    with session_local() as db:
        settings_service.update_settings(db, {"timer_duration": 9}, updated_by="1")

        history = settings_service.get_settings_history(db)
        assert len(history) == 1
        assert history[0].changes == {}


def test_history_limit(tmp_path: Path) -> None:
    session_local = _session_factory(tmp_path)
    with session_local() as db:
        for minutes in (10, 11, 12):
            settings_service.update_settings(db, {"timer_duration": minutes}, updated_by="1")

        latest = settings_service.get_settings_history(db, limit=2)
        assert [entry.snapshot["timerDuration"] for entry in latest] == [12, 11]
