"""
会员服务
"""

from typing import Optional

from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import MemberNotFoundError
from ..models.member import Member, MemberRef


class MemberService:
    """会员服务"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def find_member(self, member: MemberRef) -> Optional[Member]:
        row = self.db.fetch_one(
            "SELECT * FROM members WHERE id = ? AND member_type = ?",
            [member.member_id, member.member_type.value],
        )
        return Member(**row) if row else None

    def get_member(self, member: MemberRef) -> Member:
        """获取会员，不存在时抛出 MemberNotFoundError"""
        found = self.find_member(member)
        if found is None:
            raise MemberNotFoundError(
                "Member not found",
                details={"member_id": member.member_id, "member_type": member.member_type.value},
            )
        return found
