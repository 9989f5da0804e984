"""
数据库操作辅助工具
提供常用的测试数据构造和验证函数
"""

import json
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from ...core.database import DatabaseManager
from ...models.base import MEAL_TYPES
from ...models.member import MemberRef, MemberType


class DatabaseHelper:
    """数据库操作辅助类"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def create_organization(self, name: str = "Main Campus",
                            meal_settings: Optional[Dict[str, Any]] = None,
                            meal_skip_deadline: Optional[int] = None,
                            raw_settings: Optional[str] = None) -> int:
        """创建组织，返回组织ID"""
        settings_json = raw_settings if raw_settings is not None else (
            json.dumps(meal_settings) if meal_settings is not None else None
        )
        result = self.db.execute_one(
            """
            INSERT INTO organizations (name, settings_json, meal_skip_deadline)
            VALUES (?, ?, ?)
            RETURNING id
            """,
            [name, settings_json, meal_skip_deadline],
        )
        return result[0]

    def create_member(self, member_id: str, member_type: str = "student",
                      organization_id: Optional[int] = None, name: Optional[str] = None) -> MemberRef:
        """创建会员，返回会员引用"""
        self.db.execute_query(
            "INSERT INTO members (id, member_type, organization_id, name) VALUES (?, ?, ?, ?)",
            [member_id, member_type, organization_id, name or member_id],
        )
        return MemberRef(member_id=member_id, member_type=MemberType(member_type))

    def create_package(
        self,
        member: MemberRef,
        organization_id: Optional[int],
        package_type: str = "count_based",
        breakfast: Optional[Dict[str, Any]] = None,
        lunch: Optional[Dict[str, Any]] = None,
        dinner: Optional[Dict[str, Any]] = None,
        balance_cents: Optional[int] = None,
        valid_from: Optional[date] = None,
        valid_until: Optional[date] = None,
        status: str = "active",
        is_active: bool = True,
        created_at: Optional[datetime] = None,
    ) -> int:
        """
        创建套餐，返回套餐ID

        每个餐次的配置形如 {"enabled": True, "days": [], "total": 30, "consumed": 5, "price_cents": 0}，
        未提供的餐次视为未开通。
        """
        plans = {"breakfast": breakfast, "lunch": lunch, "dinner": dinner}
        columns = [
            "member_id", "member_type", "organization_id", "package_type",
            "balance_cents", "valid_from", "valid_until", "status", "is_active",
        ]
        values: List[Any] = [
            member.member_id, member.member_type.value, organization_id, package_type,
            balance_cents, valid_from, valid_until, status, is_active,
        ]
        for meal_type in MEAL_TYPES:
            key = meal_type.value
            plan = plans[key] or {}
            columns += [
                f"{key}_enabled", f"{key}_days", f"{key}_meals_total",
                f"{key}_meals_consumed", f"{key}_price_cents",
            ]
            values += [
                plan.get("enabled", bool(plan)),
                json.dumps(plan.get("days", [])),
                plan.get("total", 0),
                plan.get("consumed", 0),
                plan.get("price_cents", 0),
            ]
        if created_at is not None:
            columns.append("created_at")
            values.append(created_at)

        placeholders = ", ".join("?" for _ in columns)
        result = self.db.execute_one(
            f"INSERT INTO member_packages ({', '.join(columns)}) VALUES ({placeholders}) RETURNING id",
            values,
        )
        return result[0]

    def get_package_row(self, package_id: int) -> Optional[Dict[str, Any]]:
        return self.db.fetch_one("SELECT * FROM member_packages WHERE id = ?", [package_id])

    def get_tokens(self, member: Optional[MemberRef] = None,
                   on_date: Optional[date] = None) -> List[Dict[str, Any]]:
        """按会员和日期查询餐券原始记录"""
        where_conditions = ["1 = 1"]
        params: List[Any] = []
        if member is not None:
            where_conditions.append("member_id = ? AND member_type = ?")
            params += [member.member_id, member.member_type.value]
        if on_date is not None:
            where_conditions.append("token_date = ?")
            params.append(on_date)
        return self.db.fetch_all(
            f"SELECT * FROM meal_tokens WHERE {' AND '.join(where_conditions)} ORDER BY id",
            params,
        )

    def set_token_status(self, token_id: int, status: str):
        """直接修改餐券状态（用于构造终态场景）"""
        self.db.execute_query("UPDATE meal_tokens SET status = ? WHERE id = ?", [status, token_id])

    def deactivate_package(self, package_id: int):
        self.db.execute_query(
            "UPDATE member_packages SET status = 'deactivated', is_active = FALSE WHERE id = ?", [package_id]
        )

    def count_logs(self, action: str) -> int:
        return self.db.execute_one("SELECT COUNT(*) FROM logs WHERE action = ?", [action])[0]

    def drop_selections_table(self):
        """模拟选餐功能未配置"""
        self.db.execute_query("DROP TABLE meal_selections")
