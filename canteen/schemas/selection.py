"""
选餐意向相关的请求模式
"""

from typing import List

from pydantic import Field

from ..models.selection import MealSelectionUpsert
from .common import MemberRequest


class SelectionUpsertRequest(MemberRequest):
    """批量写入选餐意向请求"""
    selections: List[MealSelectionUpsert] = Field(..., min_length=1, description="按日的选餐意向")
