"""Tests for configuration loading."""

import os
from datetime import timedelta

from capbroker.config import CacheConfig, Config, ScanConfig, get_config, reset_config


def test_defaults(config):
    assert config.execution.interpreter_timeout == 30.0
    assert config.cache.max_age == timedelta(days=30)
    assert config.cache.max_failure_rate == 0.8
    assert config.cache.min_samples == 3
    assert config.paths.cache_db.name == "script_cache.db"
    assert config.paths.data_dir.exists()
    assert config.is_valid()


def test_environment_overrides(config, monkeypatch):
    monkeypatch.setenv("CAPBROKER_TIMEOUT", "5")
    monkeypatch.setenv("CAPBROKER_CACHE_MAX_AGE_DAYS", "7")
    monkeypatch.setenv("CAPBROKER_APPLICATION_DIRS", os.pathsep.join(["/A", "/B"]))

    fresh = Config()

    assert fresh.execution.interpreter_timeout == 5.0
    assert fresh.cache.max_age == timedelta(days=7)
    assert fresh.scan.application_dirs == ["/A", "/B"]


def test_validate_reports_issues(config):
    config.cache.max_failure_rate = 1.5
    config.scan.concurrency = 0
    config.log.format = "xml"

    issues = config.validate()

    assert "max_failure_rate must be between 0 and 1" in issues
    assert "scan concurrency must be at least 1" in issues
    assert "Unknown log format: xml" in issues
    assert not config.is_valid()


def test_global_config_is_cached(config):
    first = get_config()
    assert get_config() is first

    reset_config()
    assert get_config() is not first


def test_section_defaults_without_environment(monkeypatch):
    monkeypatch.delenv("CAPBROKER_CACHE_MIN_SAMPLES", raising=False)
    monkeypatch.delenv("CAPBROKER_SCAN_TIMEOUT", raising=False)

    assert CacheConfig().min_samples == 3
    assert ScanConfig().scan_timeout == 120.0
