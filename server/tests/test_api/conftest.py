# API测试共享固定装置

import pytest

TEST_APP_ID = "wx_test_app"


@pytest.fixture
def registered_credentials(client):
    """通过接口注册的密码账户"""
    credentials = {
        "username": "api_user",
        "password": "api-password",
        "email": "api_user@example.com"
    }

    response = client.post("/api/user/register", json=credentials)
    assert response.status_code == 201

    return credentials


@pytest.fixture
def wechat_auth_token(client):
    """微信登录获得的访问令牌"""
    response = client.get(
        "/api/user/wechat/login",
        params={"code": "valid_code"},
        headers={"appid": TEST_APP_ID}
    )
    assert response.status_code == 200

    return response.json()["data"]["token"]
