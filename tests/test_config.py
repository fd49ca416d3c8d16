"""
Settings Tests - environment variables, overrides and validation
"""

import logging
import unittest

import pytest

from metaingest.coreutils.config import Settings, load_settings
from metaingest.coreutils.errors import ConfigurationError
from metaingest.coreutils.logging import setup_logging


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in (
        "METADATA_DB",
        "SOURCE_DB",
        "DESTINATION_DB",
        "CONCURRENCY_LIMIT",
        "BATCH_SIZE",
        "COPY_TIMEOUT_SECONDS",
        "LOG_DIR",
        "SCHEDULE_TIME",
    ):
        monkeypatch.delenv(f"METAINGEST_{key}", raising=False)


def test_defaults():
    settings = load_settings()

    assert settings.concurrency_limit == 5
    assert settings.batch_size == 50_000
    assert settings.copy_timeout_seconds is None
    assert settings.schedule_time == "06:00"


def test_environment_values(monkeypatch):
    monkeypatch.setenv("METAINGEST_SOURCE_DB", "/data/source.duckdb")
    monkeypatch.setenv("METAINGEST_CONCURRENCY_LIMIT", "8")
    monkeypatch.setenv("METAINGEST_COPY_TIMEOUT_SECONDS", "90.5")
    monkeypatch.setenv("METAINGEST_SCHEDULE_TIME", "  ")

    settings = load_settings()

    assert settings.source_db == "/data/source.duckdb"
    assert settings.concurrency_limit == 8
    assert settings.copy_timeout_seconds == 90.5
    assert settings.schedule_time == "06:00"


def test_overrides_win_and_none_is_ignored(monkeypatch):
    monkeypatch.setenv("METAINGEST_METADATA_DB", "env.duckdb")

    settings = load_settings(metadata_db="cli.duckdb", source_db=None)

    assert settings.metadata_db == "cli.duckdb"
    assert settings.source_db == "source.duckdb"


def test_garbage_integer_fails_fast(monkeypatch):
    monkeypatch.setenv("METAINGEST_BATCH_SIZE", "lots")

    with pytest.raises(ConfigurationError, match="METAINGEST_BATCH_SIZE"):
        load_settings()


class TestSettingsValidation(unittest.TestCase):
    def test_concurrency_limit_must_be_positive(self):
        with self.assertRaises(ConfigurationError):
            Settings(concurrency_limit=0)

    def test_batch_size_must_be_positive(self):
        with self.assertRaises(ConfigurationError):
            Settings(batch_size=0)

    def test_timeout_must_be_positive(self):
        with self.assertRaises(ConfigurationError):
            Settings(copy_timeout_seconds=0)

    def test_with_overrides_validates(self):
        with self.assertRaises(ConfigurationError):
            Settings().with_overrides(concurrency_limit=-1)


def test_setup_logging_writes_daily_file(tmp_path):
    root = logging.getLogger()
    saved = root.handlers[:]
    root.handlers = []
    try:
        setup_logging(log_dir=str(tmp_path / "logs"))
        logging.getLogger("metaingest.test").info("hello")
        files = list((tmp_path / "logs").glob("ingestion_*.log"))
        assert len(files) == 1
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers = saved
