from config import AppConfig


def test_from_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("COMMITTEE_DB_PATH", str(tmp_path / "c.db"))
    monkeypatch.setenv("COMMITTEE_UPLOAD_DIR", str(tmp_path / "up"))
    monkeypatch.setenv("COMMITTEE_DEBUG", "false")
    monkeypatch.setenv("LOG_LEVEL", "warning")
    monkeypatch.setenv("COMMITTEE_CURRENCY", "PKR")
    config = AppConfig.from_env()
    assert config.db_path == str(tmp_path / "c.db")
    assert config.upload_dir == str(tmp_path / "up")
    assert config.log_level == "WARNING"
    assert config.currency == "PKR"
    assert not config.debug


def test_debug_forces_debug_logging(monkeypatch):
    monkeypatch.setenv("COMMITTEE_DEBUG", "True")
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    config = AppConfig.from_env()
    assert config.debug
    assert config.log_level == "DEBUG"
