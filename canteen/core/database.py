"""
数据库连接和管理模块
封装 DuckDB 单连接、表结构初始化、加锁事务和错误转换

数据表说明：
- organizations: 组织及其餐次时间配置
- members: 会员（学生/教职工）基本信息
- member_packages: 会员餐食套餐与额度
- meal_selections: 会员按日的用餐意向
- meal_tokens: 每人每餐每日的餐券
- logs: 系统操作日志 / 领域事件审计
"""

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import duckdb

from .app_logger import get_logger
from .exceptions import (
    BaseApplicationError,
    ConcurrencyError,
    DatabaseError,
    MissingTableError,
    StoreUnavailableError,
)
from ..config.settings import settings

logger = get_logger(__name__)

# 完整的表结构定义
# 使用序列生成自增主键
SCHEMA_SQL = r"""
CREATE SEQUENCE IF NOT EXISTS organizations_id_seq;
CREATE TABLE IF NOT EXISTS organizations (
  id INTEGER DEFAULT nextval('organizations_id_seq') PRIMARY KEY,
  name TEXT NOT NULL,
  settings_json TEXT,  -- 餐次时间配置 {"breakfast_start": "07:00", ...}
  meal_skip_deadline INTEGER,  -- 开餐前多少分钟停止跳餐
  is_active BOOLEAN DEFAULT TRUE,
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS members (
  id TEXT NOT NULL,
  member_type TEXT CHECK(member_type IN ('student','faculty','staff')) NOT NULL,
  organization_id INTEGER,
  name TEXT,
  email TEXT,
  status TEXT DEFAULT 'active',
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
  PRIMARY KEY (id, member_type)
);

CREATE SEQUENCE IF NOT EXISTS member_packages_id_seq;
CREATE TABLE IF NOT EXISTS member_packages (
  id INTEGER DEFAULT nextval('member_packages_id_seq') PRIMARY KEY,
  member_id TEXT NOT NULL,
  member_type TEXT CHECK(member_type IN ('student','faculty','staff')) NOT NULL,
  organization_id INTEGER,
  package_type TEXT CHECK(package_type IN ('count_based','balance_based')) DEFAULT 'count_based',
  breakfast_enabled BOOLEAN DEFAULT FALSE,
  lunch_enabled BOOLEAN DEFAULT FALSE,
  dinner_enabled BOOLEAN DEFAULT FALSE,
  breakfast_days TEXT,  -- JSON 数组，空数组表示每天
  lunch_days TEXT,
  dinner_days TEXT,
  breakfast_meals_total INTEGER DEFAULT 0,
  lunch_meals_total INTEGER DEFAULT 0,
  dinner_meals_total INTEGER DEFAULT 0,
  breakfast_meals_consumed INTEGER DEFAULT 0,
  lunch_meals_consumed INTEGER DEFAULT 0,
  dinner_meals_consumed INTEGER DEFAULT 0,
  breakfast_price_cents INTEGER DEFAULT 0,  -- 仅余额套餐使用
  lunch_price_cents INTEGER DEFAULT 0,
  dinner_price_cents INTEGER DEFAULT 0,
  balance_cents INTEGER,
  valid_from DATE,
  valid_until DATE,
  is_active BOOLEAN DEFAULT TRUE,
  status TEXT CHECK(status IN ('active','deactivated','expired')) DEFAULT 'active',
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
  updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_packages_member ON member_packages(member_id, member_type);

CREATE SEQUENCE IF NOT EXISTS meal_selections_id_seq;
CREATE TABLE IF NOT EXISTS meal_selections (
  id INTEGER DEFAULT nextval('meal_selections_id_seq') PRIMARY KEY,
  member_id TEXT NOT NULL,
  member_type TEXT NOT NULL,
  organization_id INTEGER,
  date DATE NOT NULL,
  breakfast_needed BOOLEAN,
  lunch_needed BOOLEAN,
  dinner_needed BOOLEAN,
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
  updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE UNIQUE INDEX IF NOT EXISTS uniq_selection_member_date ON meal_selections(member_id, member_type, date);

CREATE SEQUENCE IF NOT EXISTS meal_tokens_id_seq;
CREATE TABLE IF NOT EXISTS meal_tokens (
  id INTEGER DEFAULT nextval('meal_tokens_id_seq') PRIMARY KEY,
  organization_id INTEGER NOT NULL,
  package_id INTEGER,  -- 生成餐券时所依据的套餐，领餐时从该套餐扣减
  member_id TEXT NOT NULL,
  member_type TEXT NOT NULL,
  meal_type TEXT CHECK(meal_type IN ('BREAKFAST','LUNCH','DINNER')) NOT NULL,
  token_date DATE NOT NULL,
  token_time TIME,  -- 实际供餐时间（餐次开始时间）
  token_no INTEGER NOT NULL,  -- 同日同餐全局流水号，从1开始
  status TEXT CHECK(status IN ('PENDING','COLLECTED','CANCELLED','EXPIRED')) NOT NULL,
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
  updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
  collected_at TIMESTAMP,
  cancelled_at TIMESTAMP,
  expired_at TIMESTAMP
);

CREATE UNIQUE INDEX IF NOT EXISTS uniq_token_sequence ON meal_tokens(token_date, meal_type, token_no);
CREATE UNIQUE INDEX IF NOT EXISTS uniq_token_member_meal_day ON meal_tokens(member_id, member_type, meal_type, token_date);

CREATE SEQUENCE IF NOT EXISTS logs_id_seq;
CREATE TABLE IF NOT EXISTS logs (
  log_id INTEGER DEFAULT nextval('logs_id_seq') PRIMARY KEY,
  user_id TEXT,  -- 操作涉及的会员
  actor_id TEXT,  -- 实际执行操作者
  action TEXT,  -- 操作类型标识
  detail_json TEXT,  -- 操作详情的结构化数据
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_logs_user ON logs(user_id);
CREATE INDEX IF NOT EXISTS idx_logs_action ON logs(action);
"""


def _translate_error(e: Exception, context: str) -> DatabaseError:
    """把 DuckDB 异常转换为应用异常"""
    if isinstance(e, duckdb.CatalogException):
        return MissingTableError(f"{context}: {e}")
    if isinstance(e, (duckdb.ConstraintException, duckdb.TransactionException)):
        return ConcurrencyError(f"{context}: {e}")
    return DatabaseError(f"{context}: {e}")


class DatabaseManager:
    """数据库管理器，封装所有数据库操作"""

    def __init__(self, db_path: Optional[str] = None, timeout: Optional[float] = None):
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self.db_path = db_path or self._get_db_path_from_settings()
        self.timeout = timeout if timeout is not None else settings.store_timeout_seconds

    def _get_db_path_from_settings(self) -> str:
        """从设置中获取数据库路径"""
        db_url = settings.database_url
        if db_url.startswith("duckdb://"):
            return db_url.replace("duckdb://", "", 1)
        return db_url

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """获取数据库连接（首次访问时创建并初始化表结构）"""
        if self._connection is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            try:
                self._connection = duckdb.connect(self.db_path)
            except duckdb.Error as e:
                raise StoreUnavailableError(f"Failed to open store: {e}")
            self._init_schema()
        return self._connection

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self.connection

    def _init_schema(self):
        """初始化数据库表结构"""
        try:
            self._connection.execute(SCHEMA_SQL)
        except duckdb.Error as e:
            raise DatabaseError(f"Failed to initialize schema: {e}")

    def init_database(self):
        """初始化数据库"""
        with self._locked():
            con = self.get_connection()
            con.execute(SCHEMA_SQL)

    def close(self):
        with self._locked():
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    @contextmanager
    def _locked(self) -> Generator[None, None, None]:
        """在超时时间内获取存储锁，超时视为存储不可用（不限制持锁期间的语句耗时）"""
        if not self._lock.acquire(timeout=self.timeout):
            raise StoreUnavailableError("Store is busy, please retry")
        try:
            yield
        finally:
            self._lock.release()

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        数据库事务上下文管理器

        单连接 + 可重入锁串行化所有写事务；唯一约束或事务冲突
        转换为 ConcurrencyError，由调用方决定是否重试。
        """
        with self._locked():
            conn = self.connection
            conn.execute("BEGIN")
            try:
                yield conn
                conn.execute("COMMIT")
            except duckdb.Error as e:
                self._rollback(conn)
                raise _translate_error(e, "Transaction failed") from e
            except BaseException:
                self._rollback(conn)
                raise

    def _rollback(self, conn: duckdb.DuckDBPyConnection):
        try:
            conn.execute("ROLLBACK")
        except duckdb.Error as e:
            # 事务可能已被 DuckDB 自动中止
            logger.debug("Rollback skipped: %s", e)

    def execute_query(self, query: str, params: list = None) -> list:
        """执行查询并返回结果"""
        with self._locked():
            try:
                return self.connection.execute(query, params or []).fetchall()
            except duckdb.Error as e:
                raise _translate_error(e, "Query execution failed") from e

    def execute_one(self, query: str, params: list = None) -> Optional[tuple]:
        """执行查询并返回单条结果"""
        with self._locked():
            try:
                return self.connection.execute(query, params or []).fetchone()
            except duckdb.Error as e:
                raise _translate_error(e, "Query execution failed") from e

    def fetch_all(self, query: str, params: list = None,
                  conn: duckdb.DuckDBPyConnection = None) -> List[Dict[str, Any]]:
        """执行查询并以字典列表返回"""
        with self._locked():
            con = conn or self.connection
            try:
                cursor = con.execute(query, params or [])
                columns = [d[0] for d in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            except duckdb.Error as e:
                raise _translate_error(e, "Query execution failed") from e

    def fetch_one(self, query: str, params: list = None,
                  conn: duckdb.DuckDBPyConnection = None) -> Optional[Dict[str, Any]]:
        """执行查询并返回单条字典结果"""
        rows = self.fetch_all(query, params, conn)
        return rows[0] if rows else None


# 全局数据库管理器实例
db_manager = DatabaseManager()
