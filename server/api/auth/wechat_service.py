# 参考文档: doc/api.md 认证模块
# 微信小程序登录服务（code2Session）

import hashlib
import httpx
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from utils.exceptions import UpstreamFailureError

logger = logging.getLogger(__name__)

WECHAT_LOGIN_URL = "https://api.weixin.qq.com/sns/jscode2session"


@dataclass(frozen=True)
class WeChatSession:
    """code2Session 返回结果，openid 为空表示微信拒绝了该 code"""
    openid: Optional[str] = None
    errcode: Optional[int] = None
    errmsg: Optional[str] = None
    session_key: Optional[str] = None
    unionid: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "WeChatSession":
        return cls(
            openid=data.get("openid") or None,
            errcode=data.get("errcode"),
            errmsg=data.get("errmsg"),
            session_key=data.get("session_key"),
            unionid=data.get("unionid"),
        )


class WeChatService:
    """微信登录服务类"""

    def __init__(self, login_url: str = WECHAT_LOGIN_URL, timeout: float = 10.0,
                 mock_mode: bool = False, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            login_url: code2Session 接口地址
            timeout: 请求超时（秒）
            mock_mode: 开发环境模拟模式，不访问微信接口
            transport: 自定义 httpx 传输层（测试用）
        """
        self.login_url = login_url
        self.timeout = timeout
        self.mock_mode = mock_mode
        self.transport = transport

        if self.mock_mode:
            logger.warning("微信登录运行在模拟模式")

    async def exchange(self, app_id: str, app_secret: str, code: str) -> WeChatSession:
        """
        通过登录 code 换取 openid

        只请求一次，不重试

        Args:
            app_id: 小程序AppId
            app_secret: 小程序AppSecret
            code: wx.login 获取的一次性 code

        Returns:
            WeChatSession，微信返回错误时 openid 为空并携带 errcode/errmsg

        Raises:
            UpstreamFailureError: 网络错误、HTTP错误或返回数据无法解析
        """
        if self.mock_mode:
            return self._mock_exchange(app_id, code)

        params = {
            "appid": app_id,
            "secret": app_secret,
            "js_code": code,
            "grant_type": "authorization_code"
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.login_url, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"微信接口返回HTTP错误: {e.response.status_code}")
            raise UpstreamFailureError("WeChat login service is unavailable.") from e
        except httpx.HTTPError as e:
            logger.error(f"微信接口请求失败: {type(e).__name__}: {str(e)}")
            raise UpstreamFailureError("WeChat login service is unavailable.") from e
        except ValueError as e:
            logger.error(f"微信接口返回数据无法解析: {str(e)}")
            raise UpstreamFailureError("WeChat login service returned a malformed response.") from e

        if not isinstance(data, dict):
            logger.error(f"微信接口返回数据格式异常: {type(data).__name__}")
            raise UpstreamFailureError("WeChat login service returned a malformed response.")

        session = WeChatSession.from_payload(data)

        if session.openid:
            logger.info(f"微信认证成功，获取到openid: {session.openid[:8]}***")
        else:
            logger.warning(f"微信接口错误: {session.errcode} - {session.errmsg}")

        return session

    def _mock_exchange(self, app_id: str, code: str) -> WeChatSession:
        """
        模拟微信认证（开发环境使用），同一 code 始终得到同一 openid
        """
        logger.info(f"使用模拟微信认证，appId: {app_id}")

        if code == "invalid_code":
            return WeChatSession(errcode=40029, errmsg="invalid code")

        digest = hashlib.md5(f"{app_id}:{code}".encode()).hexdigest()[:16]
        return WeChatSession(openid=f"mock_openid_{digest}", session_key="mock_session_key")
