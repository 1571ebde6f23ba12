# 参考文档: doc/server_structure.md
# 配置管理测试

import copy
import logging

import pytest

from utils.config import Config, IdentitySettings, _process_config_values
from utils.logger import SensitiveQueryFilter

BASE_CONFIG = {
    "app": {"name": "test", "version": "0.0.1", "description": "", "debug": True},
    "server": {},
    "database": {"path": ":memory:"},
    "auth": {
        "jwt_secret_key": "secret",
        "access_token_expire_seconds": 120,
        "registration_open": True,
        "bcrypt_rounds": 4
    },
    "wechat": {"app_ids": {"wx_app": "app-secret"}, "timeout_seconds": 3},
    "logging": {"level": "INFO"}
}


def test_identity_settings_from_config():
    settings = IdentitySettings.from_config(Config(copy.deepcopy(BASE_CONFIG)))

    assert settings.registration_open is True
    assert settings.token_ttl_seconds == 120
    assert settings.wechat_timeout_seconds == 3.0
    assert settings.wechat_login_url == "https://api.weixin.qq.com/sns/jscode2session"
    assert settings.get_app_secret("wx_app") == "app-secret"
    assert settings.get_app_secret("wx_other") is None
    assert settings.get_app_secret(None) is None


def test_dotted_get():
    config = Config(copy.deepcopy(BASE_CONFIG))

    assert config.get("auth.jwt_secret_key") == "secret"
    assert config.get("auth.missing", "default") == "default"
    assert config.get_database_config()["path"] == ":memory:"


@pytest.mark.parametrize("broken", [
    lambda c: c.pop("wechat"),
    lambda c: c["auth"].pop("jwt_secret_key"),
    lambda c: c["auth"].update(jwt_secret_key="${JWT_SECRET_KEY}"),
])
def test_invalid_config_is_rejected(broken):
    config = copy.deepcopy(BASE_CONFIG)
    broken(config)

    with pytest.raises(ValueError):
        Config(config)


def test_env_placeholders_in_keys_and_values(monkeypatch):
    monkeypatch.setenv("WECHAT_APP_ID", "wx_prod")
    monkeypatch.setenv("WECHAT_APP_SECRET", "prod-secret")

    processed = _process_config_values({"app_ids": {"${WECHAT_APP_ID}": "${WECHAT_APP_SECRET}"}})

    assert processed == {"app_ids": {"wx_prod": "prod-secret"}}


def test_sensitive_query_filter_masks_secret():
    record = logging.LogRecord(
        "httpx", logging.INFO, __file__, 1,
        'HTTP Request: GET %s "HTTP/1.1 200 OK"',
        ("https://api.weixin.qq.com/sns/jscode2session?appid=wx&secret=abc123&js_code=c0de&grant_type=authorization_code",),
        None
    )

    SensitiveQueryFilter().filter(record)
    message = record.getMessage()

    assert "abc123" not in message
    assert "c0de" not in message
    assert "secret=***" in message
    assert "appid=wx" in message
