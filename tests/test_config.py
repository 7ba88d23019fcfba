import logging

import pytest

from jobmail.config import PROJECT_ROOT, Settings, load_settings
from jobmail.errors import StoreUnavailable


def test_defaults_without_file(tmp_path):
    settings = load_settings(tmp_path / "missing.yaml")
    assert settings == Settings()
    assert settings.confidence_threshold == 0.6
    assert settings.concurrency == 2


def test_yaml_overrides_defaults(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("concurrency: 4\nconfidence_threshold: 0.75\ncsv_path: out/apps.csv\n")

    settings = load_settings(path)

    assert settings.concurrency == 4
    assert settings.confidence_threshold == 0.75
    assert settings.resolved_csv_path() == PROJECT_ROOT / "out" / "apps.csv"


def test_env_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "settings.yaml"
    path.write_text("concurrency: 4\n")
    monkeypatch.setenv("JOBMAIL_CONCURRENCY", "8")
    monkeypatch.setenv("JOBMAIL_ENQUEUE_DELAY", "0")

    settings = load_settings(path)

    assert settings.concurrency == 8
    assert settings.enqueue_delay == 0.0


def test_invalid_value_keeps_default(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("concurrency: many\nunknown_key: 1\n")
    assert load_settings(path).concurrency == 2


def test_non_mapping_file_is_rejected(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        load_settings(path)


def test_retry_policy_from_settings():
    policy = Settings(retry_attempts=3, retry_base_delay=1.0, retry_max_delay=5.0).retry_policy()

    assert policy.max_attempts == 3
    assert policy.base_delay == 1.0
    assert policy.max_delay == 5.0
    assert policy.retryable == (StoreUnavailable,)


def test_zero_retry_attempts_is_rejected(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("JOBMAIL_RETRY_ATTEMPTS", "0")

    with caplog.at_level(logging.WARNING, logger="jobmail.config"):
        settings = load_settings(tmp_path / "missing.yaml")

    assert settings.retry_attempts == Settings().retry_attempts
    assert "Ignoring invalid setting retry_attempts" in caplog.text


def test_below_minimum_values_keep_defaults(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("concurrency: 0\nenqueue_delay: -1\nmax_results: 0\n")

    settings = load_settings(path)

    assert settings.concurrency == 2
    assert settings.enqueue_delay == Settings().enqueue_delay
    assert settings.max_results == 0
