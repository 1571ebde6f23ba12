# 参考文档: doc/server_structure.md
# 数据库连接和事务管理的核心组件

import sqlite3
import logging
import os
from datetime import datetime
from typing import List, Optional, Any, Callable


class DatabaseManager:
    """
    数据库管理器

    负责SQLite数据库连接管理、事务处理和基础操作
    参考文档: doc/server_structure.md
    """

    def __init__(self, db_path: str, auto_connect: bool = False, timeout: float = 5.0):
        """
        初始化数据库管理器

        Args:
            db_path: 数据库文件路径，':memory:' 表示内存数据库
            auto_connect: 是否自动连接数据库
            timeout: 等待写锁的超时时间（秒）
        """
        self.db_path = db_path
        self.timeout = timeout
        self.conn: Optional[sqlite3.Connection] = None
        self._is_connected = False

        self.logger = logging.getLogger(self.__class__.__name__)

        if auto_connect:
            self.connect()

    def connect(self) -> sqlite3.Connection:
        """
        建立数据库连接

        Returns:
            SQLite连接对象

        Raises:
            ConnectionError: 连接失败时抛出异常
        """
        if self.conn is not None:
            self.logger.warning("数据库连接已存在，先关闭现有连接")
            self.close()

        try:
            db_dir = os.path.dirname(self.db_path)
            if self.db_path != ':memory:' and db_dir and not os.path.exists(db_dir):
                os.makedirs(db_dir, exist_ok=True)
                self.logger.info(f"创建数据库目录: {db_dir}")

            self.conn = sqlite3.connect(self.db_path, timeout=self.timeout, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self._is_connected = True
            self.logger.debug(f"成功连接到数据库: {self.db_path}")

            self._configure_database()

            return self.conn

        except sqlite3.Error as e:
            self.logger.error(f"连接数据库失败: {str(e)}")
            raise ConnectionError(f"无法连接到数据库 {self.db_path}: {str(e)}") from e

    def close(self):
        """
        关闭数据库连接
        """
        if self.conn is not None:
            try:
                self.conn.close()
                self.logger.debug("数据库连接已关闭")
            except sqlite3.Error as e:
                self.logger.error(f"关闭数据库连接时发生错误: {str(e)}")
            finally:
                self.conn = None
                self._is_connected = False

    def _configure_database(self):
        """
        配置SQLite参数
        """
        pragmas = [
            "PRAGMA journal_mode = WAL",       # 多进程worker并发读写
            "PRAGMA synchronous = NORMAL",
            "PRAGMA temp_store = MEMORY"
        ]

        for pragma in pragmas:
            try:
                self.conn.execute(pragma)
            except sqlite3.Error as e:
                self.logger.warning(f"配置数据库参数 {pragma} 失败: {str(e)}")

    def is_connected(self) -> bool:
        """
        检查数据库连接状态
        """
        return self._is_connected and self.conn is not None

    def ensure_connected(self):
        """
        确保数据库连接可用

        Raises:
            ConnectionError: 连接不可用时抛出异常
        """
        if not self.is_connected():
            raise ConnectionError("数据库未连接，请先调用connect()方法")

    def execute_transaction(self, operations: List[Callable]) -> List[Any]:
        """
        串行执行事务操作，任一操作失败则整体回滚

        Args:
            operations: 操作函数列表，每个函数返回操作结果

        Returns:
            所有操作结果的列表

        Raises:
            ConnectionError: 数据库未连接
            Exception: 事务执行失败时抛出原始异常
        """
        self.ensure_connected()

        if not operations:
            self.logger.warning("事务操作列表为空")
            return []

        results = []
        transaction_id = datetime.now().strftime("%Y%m%d%H%M%S%f")

        try:
            self.logger.debug(f"开始事务 {transaction_id}，包含 {len(operations)} 个操作")

            for operation in operations:
                results.append(operation())

            self.conn.commit()
            self.logger.debug(f"事务 {transaction_id} 提交成功")

            return results

        except Exception as e:
            self.logger.info(f"事务 {transaction_id} 执行失败: {type(e).__name__}: {str(e)}")
            try:
                self.conn.rollback()
                self.logger.debug(f"事务 {transaction_id} 已回滚")
            except sqlite3.Error as rollback_error:
                self.logger.error(f"事务回滚失败: {str(rollback_error)}")

            raise

    def execute_single(self, query: str, params: List = None) -> sqlite3.Cursor:
        """
        执行单个SQL语句，DDL/DML语句自动提交

        Args:
            query: SQL语句
            params: 查询参数

        Returns:
            游标
        """
        self.ensure_connected()

        try:
            result = self.conn.execute(query, params or [])

            if query.strip().upper().startswith(('CREATE', 'DROP', 'ALTER', 'INSERT', 'UPDATE', 'DELETE')):
                self.conn.commit()

            return result

        except sqlite3.Error as e:
            self.logger.error(f"执行SQL失败: {query.strip()[:100]}..., 错误: {str(e)}")
            raise

    def check_integrity(self, required_tables: List[str]):
        """
        检查数据库完整性：必需的表存在且 SQLite 完整性检查通过

        Args:
            required_tables: 必须存在的表名列表

        Raises:
            RuntimeError: 检查未通过
        """
        self.ensure_connected()

        for table in required_tables:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name=?",
                (table,)
            ).fetchone()

            if not row or row[0] == 0:
                raise RuntimeError(f"核心表 {table} 不存在")

        result = self.conn.execute("PRAGMA integrity_check").fetchone()
        if not result or result[0] != 'ok':
            raise RuntimeError(f"数据库完整性检查失败: {result[0] if result else 'unknown'}")

        self.logger.info("数据库完整性检查通过")

    def __enter__(self):
        if not self.is_connected():
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
