"""
组织餐次时间配置服务
解析组织配置的餐次时间段和跳餐截止时间，未配置时使用默认值
"""

import json
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Optional

from ..config.settings import settings
from ..core.app_logger import get_logger
from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import OrganizationNotFoundError
from ..models.base import MEAL_TYPES, MealType
from ..models.organization import MealWindow, Organization

logger = get_logger(__name__)

# 默认餐次时间
DEFAULT_MEAL_WINDOWS = {
    MealType.BREAKFAST: MealWindow(start=time(7, 0), end=time(9, 0)),
    MealType.LUNCH: MealWindow(start=time(12, 0), end=time(14, 0)),
    MealType.DINNER: MealWindow(start=time(19, 0), end=time(21, 0)),
}


def _parse_time(value: Any) -> Optional[time]:
    """解析 "HH:MM" 或 "HH:MM:SS"，无法解析时返回 None"""
    if isinstance(value, time):
        return value
    if not value:
        return None
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(str(value).strip(), fmt).time()
        except ValueError:
            continue
    return None


class OrganizationService:
    """组织配置服务"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def get_organization(self, org_id: int) -> Organization:
        """获取组织，不存在时抛出 OrganizationNotFoundError"""
        row = self.db.fetch_one(
            "SELECT id, name, settings_json, meal_skip_deadline, is_active FROM organizations WHERE id = ?",
            [org_id],
        )
        if not row:
            raise OrganizationNotFoundError(f"Organization not found: {org_id}")

        try:
            org_settings = json.loads(row["settings_json"]) if row["settings_json"] else {}
        except (TypeError, ValueError):
            logger.warning("Organization %s has malformed settings_json, using defaults", org_id)
            org_settings = {}

        return Organization(
            id=row["id"],
            name=row["name"],
            settings=org_settings if isinstance(org_settings, dict) else {},
            meal_skip_deadline=row["meal_skip_deadline"],
            is_active=row["is_active"] if row["is_active"] is not None else True,
        )

    def get_meal_window(self, org: Organization, meal_type: Any) -> MealWindow:
        """获取餐次时间段，未配置（或配置无效）的一端使用默认值"""
        meal_type = MealType.parse(meal_type)
        default = DEFAULT_MEAL_WINDOWS[meal_type]
        key = meal_type.value

        start = _parse_time(org.settings.get(f"{key}_start"))
        end = _parse_time(org.settings.get(f"{key}_end"))
        if org.settings.get(f"{key}_start") and start is None:
            logger.warning("Invalid %s_start for organization %s", key, org.id)
        if org.settings.get(f"{key}_end") and end is None:
            logger.warning("Invalid %s_end for organization %s", key, org.id)

        return MealWindow(start=start or default.start, end=end or default.end)

    def get_skip_deadline_minutes(self, org: Organization) -> int:
        if org.meal_skip_deadline is not None:
            return org.meal_skip_deadline
        return settings.default_meal_skip_deadline

    def get_skip_deadline(self, org: Organization, meal_type: Any, on_date: date) -> datetime:
        """跳餐截止时间 = 开餐时间 - 截止分钟数"""
        window = self.get_meal_window(org, meal_type)
        start = datetime.combine(on_date, window.start)
        return start - timedelta(minutes=self.get_skip_deadline_minutes(org))

    def get_meal_times(self, org: Organization, on_date: Optional[date] = None) -> Dict[str, Any]:
        """组织的全部餐次时间配置（含指定日期的跳餐截止时间）"""
        meal_times = {}
        for meal_type in MEAL_TYPES:
            window = self.get_meal_window(org, meal_type)
            entry = window.to_dict()
            if on_date is not None:
                entry["skip_deadline"] = self.get_skip_deadline(org, meal_type, on_date).isoformat()
            meal_times[meal_type.value] = entry

        return {
            "id": org.id,
            "name": org.name,
            "meal_skip_deadline": self.get_skip_deadline_minutes(org),
            "meal_times": meal_times,
        }
