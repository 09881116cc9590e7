from jupiter_arb_bot.config import AppSettings
from jupiter_arb_bot.db import Base


def test_settings_load():
    s = AppSettings()
    assert s is not None


def test_db_models_present():
    assert hasattr(Base, "metadata")
    assert "trade_history" in Base.metadata.tables


def test_rotation_mints_shape():
    s = AppSettings(rotation_config="does/not/exist.yaml")
    assert s.rotation_mints() == []
