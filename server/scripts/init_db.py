#!/usr/bin/env python3
# 参考文档: doc/db/database_structure.md
# 数据库初始化脚本

import argparse
import logging
import sys
from pathlib import Path

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from db.account_store import AccountStore, StoreError
from db.manager import DatabaseManager
from utils.config import Config
from utils.logger import setup_logging


def init_database(db_path: str) -> int:
    """
    创建账户表并执行完整性检查

    Args:
        db_path: 数据库文件路径

    Returns:
        现有账户数量
    """
    with DatabaseManager(db_path) as db:
        store = AccountStore(db)
        store.init_schema()
        db.check_integrity(['accounts'])
        return store.count()


def main() -> int:
    parser = argparse.ArgumentParser(description="初始化身份认证数据库")
    parser.add_argument("--db-path", help="数据库文件路径，默认读取配置文件")
    args = parser.parse_args()

    config = Config()
    setup_logging(config.config)

    db_path = args.db_path or config.get_database_config()["path"]

    try:
        account_count = init_database(db_path)
    except (StoreError, RuntimeError, ConnectionError) as e:
        logging.error(f"数据库初始化失败: {str(e)}")
        return 1

    logging.info(f"数据库初始化完成: {db_path}，accounts: {account_count} 条记录")
    return 0


if __name__ == "__main__":
    sys.exit(main())
