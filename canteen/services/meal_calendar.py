"""
餐次日历
根据套餐中每个餐次的星期规则判断某天是否供应该餐
"""

from datetime import date
from typing import Any, List

from ..models.base import MEAL_TYPES, MealType
from ..models.package import MemberPackage

WEEKDAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def weekday_name(on_date: date) -> str:
    """返回小写的星期名称"""
    return WEEKDAY_NAMES[on_date.weekday()]


def is_meal_offered_on(package: MemberPackage, meal_type: Any, on_date: date) -> bool:
    """
    判断套餐在指定日期是否提供该餐次

    Args:
        package: 会员套餐
        meal_type: 餐次
        on_date: 日期

    Returns:
        bool: 餐次未启用时为 False；星期规则为空表示每天都供应
    """
    plan = package.meal(meal_type)
    if not plan.enabled:
        return False
    if not plan.days:
        return True
    allowed = {d.strip().lower() for d in plan.days}
    return weekday_name(on_date) in allowed


def offered_meals(package: MemberPackage, on_date: date) -> List[MealType]:
    """按固定顺序返回当天供应的餐次"""
    return [m for m in MEAL_TYPES if is_meal_offered_on(package, m, on_date)]
