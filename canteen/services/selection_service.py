"""
选餐意向服务
会员按日维护早/午/晚是否需要；没有记录的日期视为全部需要
"""

from datetime import date, datetime
from typing import List, Optional

from ..core.app_logger import get_logger
from ..core.database import DatabaseManager, db_manager
from ..core.events import EventBus, SelectionUpserted
from ..core.exceptions import (
    MissingTableError,
    SelectionNotFoundError,
    SelectionsNotConfiguredError,
)
from ..models.member import MemberRef
from ..models.selection import MealSelection, MealSelectionUpsert
from .member_service import MemberService

logger = get_logger(__name__)


class SelectionService:
    """选餐意向服务"""

    def __init__(self, db: Optional[DatabaseManager] = None,
                 events: Optional[EventBus] = None,
                 members: Optional[MemberService] = None):
        self.db = db or db_manager
        self.events = events or EventBus(self.db)
        self.members = members or MemberService(self.db)

    def get_selection(self, member: MemberRef, on_date: date, conn=None) -> Optional[MealSelection]:
        """
        获取会员某日的选餐记录，没有则返回 None

        不在事务内调用时，选餐表未配置按没有记录处理。
        """
        query = "SELECT * FROM meal_selections WHERE member_id = ? AND member_type = ? AND date = ?"
        params = [member.member_id, member.member_type.value, on_date]
        if conn is not None:
            row = self.db.fetch_one(query, params, conn=conn)
        else:
            try:
                row = self.db.fetch_one(query, params)
            except MissingTableError as e:
                logger.warning("Meal selections store not configured, defaulting to all meals: %s", e.message)
                return None
        return MealSelection.from_row(row) if row else None

    def list_selections(self, member: MemberRef, start_date: Optional[date] = None,
                        end_date: Optional[date] = None) -> List[MealSelection]:
        """
        按日期范围查询选餐记录

        选餐表未配置时返回空列表，保证看板可以正常渲染。
        """
        where_conditions = ["member_id = ?", "member_type = ?"]
        params = [member.member_id, member.member_type.value]

        if start_date:
            where_conditions.append("date >= ?")
            params.append(start_date)
        if end_date:
            where_conditions.append("date <= ?")
            params.append(end_date)

        query = f"SELECT * FROM meal_selections WHERE {' AND '.join(where_conditions)} ORDER BY date"
        try:
            rows = self.db.fetch_all(query, params)
        except MissingTableError as e:
            logger.warning("Meal selections store not configured, returning empty result: %s", e.message)
            return []
        return [MealSelection.from_row(row) for row in rows]

    def upsert_selections(self, member: MemberRef, items: List[MealSelectionUpsert]) -> List[MealSelection]:
        """
        批量写入选餐意向

        同一会员同一天已有记录时覆盖三个标志并更新 updated_at；
        否则插入新记录，组织ID取自会员资料。
        """
        organization_id = self.members.get_member(member).organization_id
        now = datetime.now()
        results: List[MealSelection] = []

        try:
            with self.db.transaction() as conn:
                for item in items:
                    existing = conn.execute(
                        "SELECT id FROM meal_selections WHERE member_id = ? AND member_type = ? AND date = ?",
                        [member.member_id, member.member_type.value, item.on_date],
                    ).fetchone()

                    if existing:
                        selection_id = existing[0]
                        conn.execute(
                            """
                            UPDATE meal_selections
                            SET breakfast_needed = ?, lunch_needed = ?, dinner_needed = ?, updated_at = ?
                            WHERE id = ?
                            """,
                            [item.breakfast, item.lunch, item.dinner, now, selection_id],
                        )
                    else:
                        selection_id = conn.execute(
                            """
                            INSERT INTO meal_selections (
                                member_id, member_type, organization_id, date,
                                breakfast_needed, lunch_needed, dinner_needed, created_at, updated_at
                            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                            RETURNING id
                            """,
                            [
                                member.member_id, member.member_type.value, organization_id, item.on_date,
                                item.breakfast, item.lunch, item.dinner, now, now,
                            ],
                        ).fetchone()[0]

                    row = self.db.fetch_one("SELECT * FROM meal_selections WHERE id = ?", [selection_id], conn=conn)
                    results.append(MealSelection.from_row(row))
        except MissingTableError:
            raise SelectionsNotConfiguredError(
                "Meal selections feature is not configured. Please contact admin."
            )

        # 同一天在一次请求中出现多次时，以最后一次为准
        latest = {s.id: s for s in results}
        self.events.publish_all([
            SelectionUpserted(
                member_id=s.member_id,
                member_type=s.member_type.value,
                organization_id=s.organization_id,
                selection_id=s.id,
                date=s.date,
                breakfast=s.breakfast_needed,
                lunch=s.lunch_needed,
                dinner=s.dinner_needed,
            )
            for s in latest.values()
        ])
        logger.info("Upserted %d selection(s) for %s/%s", len(latest), member.member_type.value, member.member_id)
        return results

    def delete_selection(self, selection_id: int):
        """删除选餐记录（恢复为默认全部需要）"""
        with self.db.transaction() as conn:
            row = conn.execute("SELECT id FROM meal_selections WHERE id = ?", [selection_id]).fetchone()
            if not row:
                raise SelectionNotFoundError(f"Selection not found: {selection_id}")
            conn.execute("DELETE FROM meal_selections WHERE id = ?", [selection_id])
        logger.info("Deleted selection %s", selection_id)
