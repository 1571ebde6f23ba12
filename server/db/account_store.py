# 参考文档: doc/db/database_structure.md 账户表
# 账户存储适配器：按用户名、(openid, appId)、id 查询和写入账户记录

import json
import sqlite3
import uuid
from typing import Any, Dict, Optional

from .manager import DatabaseManager

ACCOUNT_COLUMNS = (
    'id', 'username', 'password_hash', 'email', 'open_id', 'app_id', 'role',
    'created_at', 'profile', 'updated_at', 'updated_by', 'updated_app_id'
)

# 对外可见字段（不含密码哈希和内部审计字段）
PUBLIC_FIELDS = (
    'id', 'username', 'email', 'open_id', 'app_id', 'role',
    'created_at', 'profile', 'updated_at', 'updated_by'
)

FILTER_FIELDS = frozenset({'id', 'username', 'email', 'open_id', 'app_id'})
PATCH_FIELDS = frozenset({'password_hash', 'updated_at', 'updated_by', 'updated_app_id'})

CREATE_ACCOUNTS_TABLE = """
CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,                       -- 存储层分配的不透明ID
    username TEXT COLLATE NOCASE UNIQUE,       -- 小写用户名，密码账户必填
    password_hash TEXT,                        -- bcrypt 哈希
    email TEXT,                                -- 小写邮箱，修改密码时校验
    open_id TEXT,                              -- 微信OpenID
    app_id TEXT,                               -- 小程序AppId
    role INTEGER NOT NULL DEFAULT 0,           -- 0 普通用户, 1 管理员
    created_at INTEGER NOT NULL,               -- 创建时间（秒）
    profile TEXT NOT NULL DEFAULT '{}',        -- 微信资料 JSON
    updated_at INTEGER,
    updated_by TEXT,
    updated_app_id TEXT,
    UNIQUE (open_id, app_id),                  -- 同一小程序下openid唯一
    CHECK ((username IS NOT NULL) <> (open_id IS NOT NULL AND app_id IS NOT NULL))
)
"""


class StoreError(Exception):
    """存储层错误（连接不可用、SQL执行失败）"""


class DuplicateAccountError(StoreError):
    """唯一约束冲突：用户名或 (openid, appId) 已存在"""


def to_public(account: Dict[str, Any]) -> Dict[str, Any]:
    """
    账户记录转换为对外字段

    Args:
        account: 存储层返回的账户记录

    Returns:
        不含密码哈希的账户字段
    """
    return {field: account.get(field) for field in PUBLIC_FIELDS}


def _row_to_account(row: sqlite3.Row) -> Dict[str, Any]:
    account = dict(row)
    account['profile'] = json.loads(account['profile']) if account.get('profile') else {}
    return account


def _build_where(filters: Dict[str, Any]):
    if not filters:
        raise ValueError("查询条件不能为空")

    unknown = set(filters) - FILTER_FIELDS
    if unknown:
        raise ValueError(f"不支持的查询字段: {', '.join(sorted(unknown))}")

    fields = sorted(filters)
    clause = " AND ".join(f"{field} = ?" for field in fields)
    return clause, [filters[field] for field in fields]


class AccountStore:
    """
    账户存储

    唯一约束（username、(open_id, app_id)）由数据库保证，
    冲突以 DuplicateAccountError 抛出
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def init_schema(self):
        """创建账户表（已存在则跳过）"""
        try:
            self.db.execute_single(CREATE_ACCOUNTS_TABLE)
        except (sqlite3.Error, ConnectionError) as e:
            raise StoreError(f"创建账户表失败: {str(e)}") from e

    def find_one(self, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        查询单个账户

        Args:
            filters: 查询条件，如 {'username': 'alice'} 或 {'open_id': ..., 'app_id': ...}

        Returns:
            账户记录，不存在返回None
        """
        clause, params = _build_where(filters)

        try:
            self.db.ensure_connected()
            row = self.db.conn.execute(
                f"SELECT {', '.join(ACCOUNT_COLUMNS)} FROM accounts WHERE {clause} LIMIT 1",
                params
            ).fetchone()
        except (sqlite3.Error, ConnectionError) as e:
            raise StoreError(f"查询账户失败: {str(e)}") from e

        return _row_to_account(row) if row else None

    def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        创建账户，ID由存储层分配

        Args:
            record: 账户字段（username 与 open_id/app_id 二选一）

        Returns:
            创建后的完整账户记录

        Raises:
            DuplicateAccountError: 用户名或 (openid, appId) 已存在
        """
        has_username = bool(record.get('username'))
        has_federated = bool(record.get('open_id')) and bool(record.get('app_id'))
        if has_username == has_federated:
            raise ValueError("账户必须且只能是密码账户或微信账户之一")

        account = {field: record.get(field) for field in ACCOUNT_COLUMNS}
        account['id'] = uuid.uuid4().hex
        account['role'] = record.get('role', 0)
        account['profile'] = json.dumps(record.get('profile') or {}, ensure_ascii=False)

        def insert_operation():
            placeholders = ", ".join("?" for _ in ACCOUNT_COLUMNS)
            self.db.conn.execute(
                f"INSERT INTO accounts ({', '.join(ACCOUNT_COLUMNS)}) VALUES ({placeholders})",
                [account[field] for field in ACCOUNT_COLUMNS]
            )
            return self.db.conn.execute(
                f"SELECT {', '.join(ACCOUNT_COLUMNS)} FROM accounts WHERE id = ?",
                [account['id']]
            ).fetchone()

        try:
            row = self.db.execute_transaction([insert_operation])[0]
        except sqlite3.IntegrityError as e:
            if 'UNIQUE' in str(e).upper():
                raise DuplicateAccountError(f"账户已存在: {str(e)}") from e
            raise StoreError(f"创建账户失败: {str(e)}") from e
        except (sqlite3.Error, ConnectionError) as e:
            raise StoreError(f"创建账户失败: {str(e)}") from e

        return _row_to_account(row)

    def _execute_update(self, filters: Dict[str, Any], assignments, params) -> int:
        clause, where_params = _build_where(filters)

        def update_operation():
            cursor = self.db.conn.execute(
                f"UPDATE accounts SET {', '.join(assignments)} "
                f"WHERE id = (SELECT id FROM accounts WHERE {clause} LIMIT 1)",
                list(params) + where_params
            )
            return cursor.rowcount

        try:
            return self.db.execute_transaction([update_operation])[0]
        except sqlite3.IntegrityError as e:
            raise DuplicateAccountError(f"更新账户失败: {str(e)}") from e
        except (sqlite3.Error, ConnectionError) as e:
            raise StoreError(f"更新账户失败: {str(e)}") from e

    def update_one(self, filters: Dict[str, Any], patch: Dict[str, Any]) -> int:
        """
        更新单个账户

        Args:
            filters: 查询条件
            patch: 更新字段，仅允许 password_hash 和审计字段

        Returns:
            受影响的记录数
        """
        unknown = set(patch) - PATCH_FIELDS
        if not patch or unknown:
            raise ValueError(f"不支持的更新字段: {', '.join(sorted(unknown)) or '(空)'}")

        fields = sorted(patch)
        return self._execute_update(
            filters,
            [f"{field} = ?" for field in fields],
            [patch[field] for field in fields]
        )

    def merge_profile(self, filters: Dict[str, Any], changes: Dict[str, Any],
                      patch: Dict[str, Any] = None) -> int:
        """
        把资料字段合并进 profile，并可同时写入审计字段

        合并由 SQLite json_patch 在同一条 UPDATE 中完成，
        并发请求各自修改的字段都会保留

        Args:
            filters: 查询条件
            changes: 要合并的资料字段，值为None的字段会被移除
            patch: 同时更新的字段，规则同 update_one

        Returns:
            受影响的记录数
        """
        patch = patch or {}
        unknown = set(patch) - PATCH_FIELDS
        if unknown:
            raise ValueError(f"不支持的更新字段: {', '.join(sorted(unknown))}")

        fields = sorted(patch)
        return self._execute_update(
            filters,
            ["profile = json_patch(profile, ?)"] + [f"{field} = ?" for field in fields],
            [json.dumps(changes or {}, ensure_ascii=False)] + [patch[field] for field in fields]
        )

    def count(self, filters: Dict[str, Any] = None) -> int:
        """统计账户数量，供初始化脚本报告和运维检查使用"""
        query = "SELECT COUNT(*) FROM accounts"
        params = []
        if filters:
            clause, params = _build_where(filters)
            query += f" WHERE {clause}"

        try:
            self.db.ensure_connected()
            return self.db.conn.execute(query, params).fetchone()[0]
        except (sqlite3.Error, ConnectionError) as e:
            raise StoreError(f"统计账户失败: {str(e)}") from e
