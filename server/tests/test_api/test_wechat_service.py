# 参考文档: doc/api.md 认证模块
# 微信 code2Session 服务测试

import httpx
import pytest

from api.auth.wechat_service import WeChatService, WECHAT_LOGIN_URL
from utils.exceptions import UpstreamFailureError


def make_service(handler) -> WeChatService:
    return WeChatService(transport=httpx.MockTransport(handler), timeout=1.0)


class TestWeChatExchange:
    """code 换取 openid 测试"""

    @pytest.mark.asyncio
    async def test_exchange_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(dict(request.url.params))
            seen["url"] = f"{request.url.scheme}://{request.url.host}{request.url.path}"
            return httpx.Response(200, json={
                "openid": "oUpF8uMuAJO_M2pxb1Q9zNjWeS6o",
                "session_key": "tiihtNczf5v6AKRyjwEUhQ=="
            })

        session = await make_service(handler).exchange("wx_app", "app-secret", "one-time-code")

        assert session.openid == "oUpF8uMuAJO_M2pxb1Q9zNjWeS6o"
        assert session.errcode is None
        assert seen["url"] == WECHAT_LOGIN_URL
        assert seen["appid"] == "wx_app"
        assert seen["secret"] == "app-secret"
        assert seen["js_code"] == "one-time-code"
        assert seen["grant_type"] == "authorization_code"

    @pytest.mark.asyncio
    async def test_exchange_rejected_code(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"errcode": 40163, "errmsg": "code been used"})

        session = await make_service(handler).exchange("wx_app", "app-secret", "used-code")

        assert session.openid is None
        assert session.errcode == 40163
        assert session.errmsg == "code been used"

    @pytest.mark.asyncio
    async def test_exchange_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="bad gateway")

        with pytest.raises(UpstreamFailureError):
            await make_service(handler).exchange("wx_app", "app-secret", "code")

    @pytest.mark.asyncio
    async def test_exchange_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamFailureError) as exc_info:
            await make_service(handler).exchange("wx_app", "app-secret", "code")

        assert exc_info.value.status_code == 401
        assert exc_info.value.error_type == "upstream_failure"

    @pytest.mark.asyncio
    async def test_exchange_malformed_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>not json</html>")

        with pytest.raises(UpstreamFailureError):
            await make_service(handler).exchange("wx_app", "app-secret", "code")

    @pytest.mark.asyncio
    async def test_mock_mode_is_deterministic(self):
        service = WeChatService(mock_mode=True)

        first = await service.exchange("wx_app", "secret", "dev_code")
        second = await service.exchange("wx_app", "secret", "dev_code")
        other_app = await service.exchange("wx_other", "secret", "dev_code")
        rejected = await service.exchange("wx_app", "secret", "invalid_code")

        assert first.openid == second.openid
        assert first.openid != other_app.openid
        assert rejected.openid is None
        assert rejected.errcode == 40029
