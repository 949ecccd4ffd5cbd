import json
import logging

import pytest
from pydantic import ValidationError

from verifier.app.config import (
    Settings,
    configure_logging,
    load_verify_function,
)

ENV_VARS = (
    "HOST",
    "PORT",
    "MAX_BODY_BYTES",
    "CORS_ALLOW_ORIGIN",
    "TLSN_ALLOWED_HOST_SUFFIXES",
    "TLSN_NOTARY_PUBLIC_KEY_PEM",
    "TLSN_VERIFY_FUNCTION",
    "ALLOW_BROWSER_CAPTURE",
    "RECENT_TRANSFERS_DEFAULT",
    "NOTARY_INFO_TIMEOUT_SECONDS",
    "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = Settings(_env_file=None)

    assert settings.port == 8080
    assert settings.max_body_bytes == 2_000_000
    assert settings.cors_allow_origin == "*"
    assert settings.allowed_host_suffixes == ["wise.com", "transferwise.com"]
    assert settings.tlsn_notary_public_key_pem == ""
    assert settings.tlsn_verify_function == ""
    assert settings.allow_browser_capture is True
    assert settings.recent_transfers_default == 5
    assert settings.log_level == "INFO"


def test_environment_overrides(clean_env):
    clean_env.setenv("PORT", "9090")
    clean_env.setenv("MAX_BODY_BYTES", "1024")
    clean_env.setenv("TLSN_ALLOWED_HOST_SUFFIXES", " Wise.com, example.ORG ,")
    clean_env.setenv("ALLOW_BROWSER_CAPTURE", "false")
    clean_env.setenv("LOG_LEVEL", "debug")
    clean_env.setenv("TLSN_VERIFY_FUNCTION", "json:dumps")

    settings = Settings(_env_file=None)

    assert settings.port == 9090
    assert settings.max_body_bytes == 1024
    assert settings.allowed_host_suffixes == ["wise.com", "example.org"]
    assert settings.allow_browser_capture is False
    assert settings.log_level == "DEBUG"
    assert settings.tlsn_verify_function == "json:dumps"


@pytest.mark.parametrize(
    "overrides",
    [
        {"port": 0},
        {"max_body_bytes": 0},
        {"recent_transfers_default": 11},
        {"log_level": "chatty"},
        {"tlsn_verify_function": "module_without_attribute"},
    ],
)
def test_invalid_values_are_rejected(clean_env, overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_settings_are_immutable(clean_env):
    settings = Settings(_env_file=None)
    with pytest.raises(ValidationError):
        settings.port = 1


def test_load_verify_function():
    assert load_verify_function("") is None
    assert load_verify_function("json:dumps") is json.dumps
    assert load_verify_function("json:JSONDecoder.decode") is json.JSONDecoder.decode

    with pytest.raises(AttributeError):
        load_verify_function("json:does_not_exist")
    with pytest.raises(TypeError):
        load_verify_function("json:__name__")
    with pytest.raises(ModuleNotFoundError):
        load_verify_function("no_such_module_anywhere:verify")


def test_configure_logging_installs_one_handler():
    configure_logging("DEBUG")
    configure_logging("WARNING")

    logger = logging.getLogger("verifier")
    installed = [h for h in logger.handlers if getattr(h, "_verifier_handler", False)]

    assert len(installed) == 1
    assert logger.level == logging.WARNING
