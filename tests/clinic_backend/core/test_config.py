from datetime import time

import pytest

from clinic_backend.core import config
from clinic_backend.scheduling.engine import SlotConfig
from clinic_backend.scheduling.template import GridWindow


def test_parse_clock() -> None:
    assert config.parse_clock('09:30') == time(9, 30)
    with pytest.raises(ValueError):
        config.parse_clock('nine')


def test_defaults_pass_validation() -> None:
    config.validate_runtime_config()


@pytest.mark.parametrize(
    ('attribute', 'value', 'message'),
    [
        ('CLINIC_TIMEZONE', 'Mars/Olympus_Mons', 'not a known timezone'),
        ('SLOT_MINUTES', 25, 'positive divisor of 60'),
        ('MIN_LEAD_MINUTES', -5, 'must not be negative'),
        ('ROLL_FORWARD_LIMIT_DAYS', 0, 'at least 1'),
        ('CLINIC_DAY_START', '18:00', 'earlier than'),
        ('CLINIC_DAY_END', '16:45', 'on the slot grid'),
        ('CLINIC_DAY_END', 'late', 'HH:MM'),
    ],
)
def test_validate_runtime_config_rejects_bad_scheduling_settings(
    monkeypatch: pytest.MonkeyPatch,
    attribute: str,
    value,
    message: str,
) -> None:
    monkeypatch.setattr(config, attribute, value)

    with pytest.raises(RuntimeError) as exception_info:
        config.validate_runtime_config()

    assert message in str(exception_info.value)


def test_production_requires_real_jwt_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setattr(config, 'JWT_SECRET_KEY', 'change-me')

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()


def test_slot_config_reads_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'MIN_LEAD_MINUTES', 120)
    monkeypatch.setattr(config, 'ROLL_FORWARD_LIMIT_DAYS', 7)
    monkeypatch.setattr(config, 'CLINIC_DAY_START', '08:00')
    monkeypatch.setattr(config, 'CLINIC_DAY_END', '12:00')

    slot_config = SlotConfig.from_settings()

    assert slot_config.min_lead_time.total_seconds() == 7200
    assert slot_config.roll_forward_limit == 7
    assert slot_config.grid_window == GridWindow(start=time(8, 0), end=time(12, 0), slot_minutes=30)
