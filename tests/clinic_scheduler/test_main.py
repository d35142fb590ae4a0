import pytest

from clinic_scheduler.core import config
from clinic_scheduler.main import app, root


def test_root_reports_health() -> None:
    assert root() == {'status': 'Clinic Scheduler API Running'}


def test_routes_are_mounted() -> None:
    paths = {route.path for route in app.routes}

    assert '/appointments' in paths
    assert '/appointments/{appointment_id}/cancel' in paths
    assert '/doctors/{doctor_id}/slots' in paths
    assert '/doctors/status-sweep' in paths
    assert '/doctors/{doctor_id}/queue' in paths


@pytest.mark.parametrize(
    ('setting', 'value'),
    [
        ('DEFAULT_CONSULTATION_MINUTES', 0),
        ('ADVANCE_BOOKING_CAPACITY_RATIO', 1.5),
        ('BOOKING_MAX_RETRIES', 0),
        ('DOCTOR_STATUS_INTERVAL_SECONDS', -5),
    ],
)
def test_validate_runtime_config_rejects_nonsense(monkeypatch: pytest.MonkeyPatch, setting: str, value) -> None:
    monkeypatch.setattr(config, setting, value)

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()


def test_production_requires_a_server_database(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setattr(config, 'DATABASE_URL', 'sqlite:///./clinic.db')

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()
