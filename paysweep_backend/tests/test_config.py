from __future__ import annotations

import pytest

from paysweep_backend.config import Settings, get_settings, reset_settings
from paysweep_backend.config.loaders import (
    CompositeConfigLoader,
    ConfigParser,
    EnvironmentConfigLoader,
    YamlConfigLoader,
    load_settings,
)
from paysweep_backend.config.settings import QueueConfig
from paysweep_backend.config.validators import (
    PaymentTimeoutConfigValidator,
    QueueConfigValidator,
    validate_settings,
)

YAML = """
payment_timeout:
  check_interval_minutes: 15
  payment_timeout_minutes: 45
queue:
  backend: celery
  broker_url: redis://cache:6379/1
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "PAYSWEEP_CONFIG",
        "PAYSWEEP_CHECK_INTERVAL_MINUTES",
        "PAYSWEEP_PAYMENT_TIMEOUT_MINUTES",
        "PAYSWEEP_QUEUE_BACKEND",
        "PAYSWEEP_BROKER_URL",
        "PAYSWEEP_TIMEZONE",
        "PAYSWEEP_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


def test_yaml_file_overrides_defaults(tmp_path):
    path = tmp_path / "paysweep.yaml"
    path.write_text(YAML, encoding="utf-8")

    settings = load_settings(path)

    assert settings.payment_timeout.check_interval_minutes == 15
    assert settings.payment_timeout.payment_timeout_minutes == 45
    assert settings.queue.backend == "celery"
    assert settings.log_cleanup.hour == 2


def test_missing_or_malformed_yaml_yields_empty_config(tmp_path):
    assert YamlConfigLoader(tmp_path / "absent.yaml").load() == {}

    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    assert YamlConfigLoader(path).load() == {}


def test_environment_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "paysweep.yaml"
    path.write_text(YAML, encoding="utf-8")
    monkeypatch.setenv("PAYSWEEP_CHECK_INTERVAL_MINUTES", "5")
    monkeypatch.setenv("PAYSWEEP_LOG_LEVEL", "DEBUG")

    settings = load_settings(path)

    assert settings.payment_timeout.check_interval_minutes == 5
    assert settings.payment_timeout.payment_timeout_minutes == 45
    assert settings.logging.level == "DEBUG"


def test_environment_loader_ignores_unknown_keys(monkeypatch):
    monkeypatch.setenv("PAYSWEEP_UNKNOWN", "x")
    monkeypatch.setenv("PAYSWEEP_QUEUE_BACKEND", "celery")

    assert EnvironmentConfigLoader().load() == {"queue": {"backend": "celery"}}


def test_deep_merge_keeps_sibling_keys():
    merged = CompositeConfigLoader([])._deep_merge(
        {"queue": {"backend": "memory", "task_prefix": "paysweep"}},
        {"queue": {"backend": "celery"}},
    )

    assert merged == {"queue": {"backend": "celery", "task_prefix": "paysweep"}}


def test_invalid_values_fall_back_to_defaults():
    settings = ConfigParser.parse({"payment_timeout": {"check_interval_minutes": 0}})

    assert settings == Settings()


def test_get_settings_is_cached_until_reset(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text("payment_timeout:\n  payment_timeout_minutes: 90\n", encoding="utf-8")
    monkeypatch.setenv("PAYSWEEP_CONFIG", str(path))

    first = get_settings()
    assert first.payment_timeout.payment_timeout_minutes == 90
    assert get_settings() is first

    path.write_text("payment_timeout:\n  payment_timeout_minutes: 120\n", encoding="utf-8")
    reset_settings()
    assert get_settings().payment_timeout.payment_timeout_minutes == 120


def test_payment_timeout_warnings():
    settings = Settings.model_validate(
        {"payment_timeout": {"check_interval_minutes": 2, "payment_timeout_minutes": 5}}
    )

    result = PaymentTimeoutConfigValidator().validate(settings.payment_timeout)

    assert result.is_valid
    assert len(result.warnings) == 1


def test_celery_without_broker_is_an_error():
    result = QueueConfigValidator().validate(QueueConfig(backend="celery", broker_url=" "))

    assert not result.is_valid
    assert result.errors


def test_unknown_timezone_is_an_error():
    result = validate_settings(Settings(scheduler_timezone="Mars/Olympus_Mons"))

    assert not result.is_valid
