import pytest

from board.services.settings_service import ReorderSettings
from config import settings as config


def test_settings_defaults_follow_config():
    settings = ReorderSettings.instance
    assert settings.position_gap == config.POSITION_GAP
    assert settings.min_batch_gap == config.MIN_BATCH_GAP
    assert settings.operation_timeout_s == config.OPERATION_TIMEOUT_S
    assert settings.ordering == "manual"


def test_default_constants():
    assert config.TIGHT_POSITION_THRESHOLD == 8
    assert config.MIN_BATCH_GAP == config.POSITION_GAP // 2


@pytest.mark.parametrize("kwargs", [{"position_gap": 1}, {"operation_timeout_s": 0}])
def test_invalid_settings_rejected(kwargs):
    with pytest.raises(ValueError):
        ReorderSettings(**kwargs)
