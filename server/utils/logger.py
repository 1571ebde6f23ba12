# 参考文档: doc/server_structure.md
# 日志配置管理工具

import logging
import logging.handlers
import os
import re
from typing import Dict, Any

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'

# 微信接口URL中的 secret/js_code 参数
_SENSITIVE_QUERY = re.compile(r'((?:secret|js_code)=)[^&\s"\']+')


class SensitiveQueryFilter(logging.Filter):
    """
    脱敏过滤器

    httpx 在 INFO 级别会输出完整请求URL，其中包含 appSecret
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _SENSITIVE_QUERY.sub(r'\1***', message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def _parse_size(size_str: str) -> int:
    """解析文件大小字符串，如 '10MB' -> 10485760"""
    size_str = str(size_str).upper()
    units = {'KB': 1024, 'MB': 1024 ** 2, 'GB': 1024 ** 3}

    for suffix, factor in units.items():
        if size_str.endswith(suffix):
            return int(size_str[:-2]) * factor

    return int(size_str)


def setup_logging(config: Dict[str, Any]):
    """
    根据配置设置日志系统
    参考文档: doc/server_structure.md - utils/logger.py
    """
    log_config = config.get('logging', {})
    level_name = log_config.get('level', 'INFO')

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(getattr(logging, level_name))

    formatter = logging.Formatter(log_config.get('format', DEFAULT_FORMAT))
    sensitive_filter = SensitiveQueryFilter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(sensitive_filter)
    root_logger.addHandler(console_handler)

    if log_config.get('file_enabled', False):
        file_path = log_config.get('file_path', 'logs/identity.log')
        log_dir = os.path.dirname(file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            file_path,
            maxBytes=_parse_size(log_config.get('max_file_size', '10MB')),
            backupCount=log_config.get('backup_count', 5),
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(sensitive_filter)
        root_logger.addHandler(file_handler)

    # passlib 在较新 bcrypt 版本下会输出版本探测警告
    logging.getLogger('passlib').setLevel(logging.ERROR)

    logging.info(f"日志系统初始化完成，级别: {level_name}")
