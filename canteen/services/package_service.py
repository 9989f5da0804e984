"""
套餐与额度账本服务
提供会员有效套餐查询、套餐视图（剩余天数、剩余次数、餐券统计）、
领餐扣减和过期套餐清理
"""

from datetime import date, datetime
from typing import Any, Dict, Optional

from ..core.app_logger import get_logger
from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import InsufficientBalanceError, QuotaExhaustedError
from ..models.base import MEAL_TYPES, MealType
from ..models.member import MemberRef
from ..models.package import MemberPackage, PackageStatus
from ..models.token import MealToken

logger = get_logger(__name__)


class PackageService:
    """套餐账本服务"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def get_active_package(self, member: MemberRef, conn=None) -> Optional[MemberPackage]:
        """
        获取会员当前有效套餐

        在 is_active 且 status='active' 的套餐中取最新创建的一条。
        """
        row = self.db.fetch_one(
            """
            SELECT * FROM member_packages
            WHERE member_id = ? AND member_type = ? AND is_active = TRUE AND status = 'active'
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            [member.member_id, member.member_type.value],
            conn=conn,
        )
        return MemberPackage.from_row(row) if row else None

    def get_package(self, package_id: int, conn=None) -> Optional[MemberPackage]:
        row = self.db.fetch_one("SELECT * FROM member_packages WHERE id = ?", [package_id], conn=conn)
        return MemberPackage.from_row(row) if row else None

    def get_package_for_token(self, token: MealToken, conn=None) -> Optional[MemberPackage]:
        """
        领餐时应扣减的套餐

        优先取生成餐券时记录的套餐；没有记录时在会员同组织的有效套餐中
        取有效期覆盖餐券日期的最新一条。套餐已失效、组织不符或有效期
        不覆盖餐券日期时返回 None。
        """
        if token.package_id is not None:
            package = self.get_package(token.package_id, conn=conn)
            return package if self._usable_for(package, token) else None

        rows = self.db.fetch_all(
            """
            SELECT * FROM member_packages
            WHERE member_id = ? AND member_type = ? AND organization_id = ?
              AND is_active = TRUE AND status = 'active'
            ORDER BY created_at DESC, id DESC
            """,
            [token.member_id, token.member_type.value, token.organization_id],
            conn=conn,
        )
        for row in rows:
            package = MemberPackage.from_row(row)
            if package.covers(token.token_date):
                return package
        return None

    @staticmethod
    def _usable_for(package: Optional[MemberPackage], token: MealToken) -> bool:
        return (
            package is not None
            and package.is_active
            and package.status == PackageStatus.ACTIVE
            and package.organization_id == token.organization_id
            and package.covers(token.token_date)
        )

    def get_package_view(self, member: MemberRef, today: date) -> Optional[Dict[str, Any]]:
        """
        会员套餐视图

        Returns:
            dict: 归一化的套餐信息，包含 days_remaining / is_unlimited / is_expired、
            各餐次剩余次数以及有效期内的餐券统计；无有效套餐时返回 None
        """
        package = self.get_active_package(member)
        if package is None:
            return None

        token_stats = self._collect_token_stats(member, package)

        meals = {}
        for meal_type in MEAL_TYPES:
            plan = package.meal(meal_type)
            meals[meal_type.value] = {
                "enabled": plan.enabled,
                "days": plan.days,
                "total": plan.total if plan.enabled else 0,
                "consumed": plan.consumed,
                "remaining": None if package.is_balance_based else (plan.remaining if plan.enabled else 0),
                "price_cents": plan.price_cents if package.is_balance_based else None,
                "token_stats": token_stats[meal_type.value],
            }

        return {
            "id": package.id,
            "member_id": package.member_id,
            "member_type": package.member_type.value,
            "organization_id": package.organization_id,
            "package_type": package.package_type.value,
            "status": package.status.value,
            "is_active": package.is_active,
            "balance_cents": package.balance_cents if package.is_balance_based else None,
            "valid_from": package.valid_from,
            "valid_until": package.valid_until,
            "days_remaining": package.days_remaining(today),
            "is_unlimited": package.is_unlimited,
            "is_expired": package.is_expired(today),
            "meals": meals,
        }

    def _collect_token_stats(self, member: MemberRef, package: MemberPackage) -> Dict[str, Dict[str, int]]:
        """统计套餐有效期内各餐次、各状态的餐券数量"""
        stats = {
            m.value: {"collected": 0, "pending": 0, "cancelled": 0, "expired": 0}
            for m in MEAL_TYPES
        }

        where_conditions = ["member_id = ?", "member_type = ?"]
        params = [member.member_id, member.member_type.value]
        if package.valid_from:
            where_conditions.append("token_date >= ?")
            params.append(package.valid_from)
        if package.valid_until:
            where_conditions.append("token_date <= ?")
            params.append(package.valid_until)

        rows = self.db.fetch_all(
            f"""
            SELECT meal_type, status, COUNT(*) AS cnt
            FROM meal_tokens
            WHERE {' AND '.join(where_conditions)}
            GROUP BY meal_type, status
            """,
            params,
        )
        for row in rows:
            meal_key = str(row["meal_type"]).lower()
            status_key = str(row["status"]).lower()
            if meal_key in stats and status_key in stats[meal_key]:
                stats[meal_key][status_key] = row["cnt"]
        return stats

    def record_collection(self, conn, package_id: int, meal_type: Any) -> MemberPackage:
        """
        领餐时扣减额度（须在领餐事务内调用）

        次卡：已用次数 +1，不允许超过总次数；
        余额卡：扣除餐次单价，余额不足时拒绝。
        """
        meal_type = MealType.parse(meal_type)
        package = self.get_package(package_id, conn=conn)
        plan = package.meal(meal_type)
        key = meal_type.value

        if package.is_balance_based:
            balance = package.balance_cents or 0
            if balance < plan.price_cents:
                raise InsufficientBalanceError(
                    "Insufficient balance for this meal",
                    details={"balance_cents": balance, "price_cents": plan.price_cents},
                )
            conn.execute(
                f"""
                UPDATE member_packages
                SET balance_cents = COALESCE(balance_cents, 0) - ?,
                    {key}_meals_consumed = {key}_meals_consumed + 1,
                    updated_at = ?
                WHERE id = ?
                """,
                [plan.price_cents, datetime.now(), package_id],
            )
        else:
            if plan.consumed >= plan.total:
                raise QuotaExhaustedError(
                    f"No {key} meals remaining in this package",
                    details={"total": plan.total, "consumed": plan.consumed},
                )
            conn.execute(
                f"""
                UPDATE member_packages
                SET {key}_meals_consumed = {key}_meals_consumed + 1, updated_at = ?
                WHERE id = ?
                """,
                [datetime.now(), package_id],
            )

        return self.get_package(package_id, conn=conn)

    def expire_lapsed_packages(self, today: date) -> int:
        """把有效期已过的套餐标记为 expired"""
        with self.db.transaction() as conn:
            rows = conn.execute(
                """
                UPDATE member_packages
                SET status = 'expired', is_active = FALSE, updated_at = ?
                WHERE status = 'active' AND valid_until IS NOT NULL AND valid_until < ?
                RETURNING id
                """,
                [datetime.now(), today],
            ).fetchall()
        if rows:
            logger.info("Expired %d lapsed package(s)", len(rows))
        return len(rows)
