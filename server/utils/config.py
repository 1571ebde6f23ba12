# 参考文档: doc/server_structure.md
# 配置管理工具

import json
import os
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Any

REQUIRED_SECTIONS = ['app', 'server', 'database', 'auth', 'wechat', 'logging']

CONFIG_FILES = {
    'production': 'config/config-prod.json',
    'development': 'config/config-dev.json',
}

SERVER_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _replace_env_vars(value: str) -> str:
    """
    替换环境变量占位符
    将 ${ENV_VAR} 格式的占位符替换为实际的环境变量值
    """
    def replace_match(match):
        env_var = match.group(1)
        return os.getenv(env_var, match.group(0))  # 如果环境变量不存在，保持原样

    return re.sub(r'\$\{([^}]+)\}', replace_match, value)


def _process_config_values(config: Any) -> Any:
    """
    递归处理配置值，替换环境变量（字典键同样替换，用于 appId 映射）
    """
    if isinstance(config, dict):
        return {_replace_env_vars(k): _process_config_values(v) for k, v in config.items()}
    elif isinstance(config, list):
        return [_process_config_values(item) for item in config]
    elif isinstance(config, str):
        return _replace_env_vars(config)
    else:
        return config


def load_config(config_env: str) -> Dict[str, Any]:
    """
    加载配置文件
    根据 CONFIG_ENV 环境变量选择配置文件，未知环境回退到 config/config.json

    Args:
        config_env: 环境名称

    Returns:
        配置字典
    """
    config_file = CONFIG_FILES.get(config_env, 'config/config.json')

    if not os.path.isabs(config_file):
        config_file = os.path.join(SERVER_DIR, config_file)

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except FileNotFoundError:
        logging.error(f"配置文件不存在: {config_file}")
        raise
    except json.JSONDecodeError as e:
        logging.error(f"配置文件JSON格式错误: {e}")
        raise

    config = _process_config_values(config)

    # 移除内部文档引用字段
    config.pop('_reference_doc', None)

    logging.info(f"成功加载配置文件: {config_file}")
    return config


def get_database_path(config: Dict[str, Any]) -> str:
    """
    获取数据库路径（相对于server目录）

    Args:
        config: 配置字典

    Returns:
        数据库文件的绝对路径，内存数据库原样返回
    """
    db_path = config.get('database', {}).get('path', 'data/identity.db')

    if db_path != ':memory:' and not os.path.isabs(db_path):
        db_path = os.path.join(SERVER_DIR, db_path)

    return db_path


def validate_config(config: Dict[str, Any]) -> bool:
    """
    验证配置文件的完整性

    Args:
        config: 配置字典

    Returns:
        验证结果
    """
    for section in REQUIRED_SECTIONS:
        if section not in config:
            logging.error(f"配置文件缺少必需的section: {section}")
            return False

    auth_config = config.get('auth', {})
    secret = auth_config.get('jwt_secret_key')
    if not secret or secret.startswith('${'):
        logging.error("JWT密钥未配置")
        return False

    app_ids = config.get('wechat', {}).get('app_ids', {})
    if not isinstance(app_ids, dict):
        logging.error("wechat.app_ids 必须是 appId -> appSecret 的映射")
        return False

    return True


class Config:
    """
    配置管理类
    """
    def __init__(self, config: Dict[str, Any] = None):
        self.env = os.getenv('CONFIG_ENV', 'development')
        self.config = config if config is not None else load_config(self.env)

        if not validate_config(self.config):
            raise ValueError("配置文件验证失败")

    def get(self, key: str, default=None):
        """
        获取配置项，支持点号分隔的嵌套键

        Args:
            key: 配置键，支持 'app.name' 格式
            default: 默认值

        Returns:
            配置值
        """
        value = self.config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_database_config(self) -> Dict[str, Any]:
        """
        获取数据库配置

        Returns:
            数据库配置字典
        """
        db_config = self.config.get('database', {}).copy()
        db_config['path'] = get_database_path(self.config)
        return db_config


@dataclass(frozen=True)
class IdentitySettings:
    """
    身份认证核心所需的只读配置
    """
    registration_open: bool
    token_secret: str
    token_algorithm: str = "HS256"
    token_ttl_seconds: int = 86400
    bcrypt_rounds: int = 10
    app_secrets: Dict[str, str] = field(default_factory=dict)
    wechat_login_url: str = "https://api.weixin.qq.com/sns/jscode2session"
    wechat_timeout_seconds: float = 10.0
    wechat_mock_mode: bool = False

    @classmethod
    def from_config(cls, config: Config) -> "IdentitySettings":
        return cls(
            registration_open=bool(config.get('auth.registration_open', False)),
            token_secret=config.get('auth.jwt_secret_key'),
            token_algorithm=config.get('auth.jwt_algorithm', 'HS256'),
            token_ttl_seconds=int(config.get('auth.access_token_expire_seconds', 86400)),
            bcrypt_rounds=int(config.get('auth.bcrypt_rounds', 10)),
            app_secrets=dict(config.get('wechat.app_ids', {})),
            wechat_login_url=config.get('wechat.login_url', cls.wechat_login_url),
            wechat_timeout_seconds=float(config.get('wechat.timeout_seconds', 10.0)),
            wechat_mock_mode=bool(config.get('wechat.mock_mode', False)),
        )

    def get_app_secret(self, app_id: str):
        """根据appId查找appSecret，未注册返回None"""
        if not app_id:
            return None
        return self.app_secrets.get(app_id)
