# 参考文档: doc/server_structure.md 测试套件部分
# 测试配置和固定装置

import asyncio
import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# 添加项目路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# 设置测试环境
os.environ['CONFIG_ENV'] = 'development'

from api.main import app
from api.auth.routes import get_database, get_settings, get_wechat_service
from api.auth.wechat_service import WeChatSession
from db.account_store import AccountStore
from db.identity_operations import IdentityOperations
from db.manager import DatabaseManager
from utils.config import IdentitySettings
from utils.security import JWTManager, PasswordHasher

TEST_APP_ID = "wx_test_app"
TEST_APP_SECRET = "test-app-secret"
TEST_OPEN_ID = "oUpF8uMuAJO_M2pxb1Q9zNjWeS6o"


class FakeWeChatService:
    """替代微信 code2Session 的测试服务，code -> WeChatSession"""

    def __init__(self):
        self.sessions = {}
        self.calls = []

    def register_code(self, code: str, openid: str):
        self.sessions[code] = WeChatSession(openid=openid, session_key="test_session_key")

    async def exchange(self, app_id: str, app_secret: str, code: str) -> WeChatSession:
        self.calls.append((app_id, app_secret, code))
        # 让出事件循环，便于并发测试交错执行
        await asyncio.sleep(0)
        return self.sessions.get(code, WeChatSession(errcode=40029, errmsg="invalid code"))


@pytest.fixture
def test_db():
    """测试数据库实例（内存数据库）"""
    db = DatabaseManager(":memory:", auto_connect=True)
    yield db
    db.close()


@pytest.fixture
def account_store(test_db):
    """已建表的账户存储"""
    store = AccountStore(test_db)
    store.init_schema()
    return store


@pytest.fixture
def settings():
    """测试用身份认证配置"""
    return IdentitySettings(
        registration_open=True,
        token_secret="test-secret-key",
        token_ttl_seconds=3600,
        bcrypt_rounds=4,
        app_secrets={TEST_APP_ID: TEST_APP_SECRET},
    )


@pytest.fixture
def jwt_manager(settings):
    return JWTManager(
        secret_key=settings.token_secret,
        algorithm=settings.token_algorithm,
        access_token_expire_seconds=settings.token_ttl_seconds
    )


@pytest.fixture
def password_hasher(settings):
    return PasswordHasher(rounds=settings.bcrypt_rounds)


@pytest.fixture
def wechat_service():
    service = FakeWeChatService()
    service.register_code("valid_code", TEST_OPEN_ID)
    return service


@pytest.fixture
def identity_ops(account_store, settings, jwt_manager, wechat_service, password_hasher):
    """身份认证业务操作实例"""
    return IdentityOperations(
        store=account_store,
        settings=settings,
        jwt_manager=jwt_manager,
        wechat_service=wechat_service,
        password_hasher=password_hasher
    )


@pytest.fixture
def registered_user(identity_ops):
    """创建测试密码账户"""
    identity_ops.register("test_user", "correct-password", "Test.User@Example.com")
    return {"username": "test_user", "password": "correct-password", "email": "test.user@example.com"}


@pytest.fixture
def client(test_db, account_store, settings, wechat_service):
    """FastAPI测试客户端，数据库和微信服务替换为测试实例"""
    def override_database():
        yield test_db

    app.dependency_overrides[get_database] = override_database
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_wechat_service] = lambda: wechat_service

    yield TestClient(app)

    app.dependency_overrides.clear()
