import pytest
from pydantic import ValidationError

from certwatch.core.models import CertwatchSettings, EventKind, parse_duration
from certwatch.runtime.contracts import classify_event


def test_settings_defaults():
    settings = CertwatchSettings(redis_url="redis://localhost", certs=["example.com"])

    assert settings.key_prefix == "caddy"
    assert settings.value_prefix == "caddy-storage-redis"
    assert settings.acme_dir_name == "acme-v02.api.letsencrypt.org-directory"
    assert settings.cert_dir == "/var/lib/certwatch"
    assert settings.retry_sleep == 10.0
    assert settings.cmd is None
    assert settings.debug is False


def test_settings_require_url_and_names():
    with pytest.raises(ValidationError):
        CertwatchSettings(certs=["example.com"])

    with pytest.raises(ValidationError):
        CertwatchSettings(redis_url="redis://localhost", certs=[])


def test_settings_reject_names_with_slash():
    with pytest.raises(ValidationError):
        CertwatchSettings(redis_url="redis://localhost", certs=["a/b"])


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("CERTWATCH_REDIS_URL", "redis://cache:6379/1")
    monkeypatch.setenv("CERTWATCH_CERTS", '["a.example", "b.example"]')
    monkeypatch.setenv("CERTWATCH_RETRY_SLEEP", "1m30s")

    settings = CertwatchSettings()

    assert settings.redis_url == "redis://cache:6379/1"
    assert settings.certs == ["a.example", "b.example"]
    assert settings.retry_sleep == 90.0


def test_blank_cmd_is_treated_as_unset():
    settings = CertwatchSettings(redis_url="redis://localhost", certs=["x"], cmd="   ")

    assert settings.cmd is None


@pytest.mark.parametrize(
    "value, expected",
    [
        ("10s", 10.0),
        ("1m30s", 90.0),
        ("500ms", 0.5),
        ("1h", 3600.0),
        ("2.5", 2.5),
        (3, 3.0),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", ["", "ten", "10x", "s10", "-5s"])
def test_parse_duration_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_duration(value)


@pytest.mark.parametrize(
    "payload, kind",
    [
        ("set", EventKind.SET),
        ("del", EventKind.DELETE),
        ("expired", EventKind.DELETE),
        ("evicted", EventKind.DELETE),
        ("expire", EventKind.UNKNOWN),
        ("rename_to", EventKind.UNKNOWN),
    ],
)
def test_classify_event(payload, kind):
    event = classify_event("example.com/example.com.crt", payload)

    assert event.kind == kind
    assert event.payload == payload
