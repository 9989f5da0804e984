"""
套餐额度账本测试
"""

from datetime import date, datetime

import pytest

from ..core.exceptions import InsufficientBalanceError, QuotaExhaustedError
from ..models.base import MealType
from ..models.package import MealPlan, MemberPackage, PackageStatus
from ..models.token import MealToken, TokenStatus


class TestPackageModel:
    """套餐模型派生字段测试"""

    def test_remaining_never_negative(self):
        assert MealPlan(total=10, consumed=4).remaining == 6
        assert MealPlan(total=10, consumed=10).remaining == 0
        assert MealPlan(total=3, consumed=7).remaining == 0

    def test_days_remaining(self):
        package = MemberPackage(
            id=1, member_id="S1001", member_type="student", valid_until=date(2024, 3, 10)
        )
        assert package.days_remaining(date(2024, 3, 1)) == 9
        assert package.days_remaining(date(2024, 3, 20)) == 0
        assert package.is_expired(date(2024, 3, 11)) is True
        assert package.is_unlimited is False

    def test_unlimited_package(self):
        package = MemberPackage(id=1, member_id="S1001", member_type="student")
        assert package.is_unlimited is True
        assert package.days_remaining(date(2024, 3, 1)) is None
        assert package.covers(date(1999, 1, 1))


class TestPackageService:
    """套餐服务测试"""

    def test_active_package_picks_latest(self, package_service, db_helper, member, organization):
        """多个有效套餐时取最新创建的一个"""
        db_helper.create_package(member, organization, breakfast={"total": 10}, created_at=datetime(2024, 1, 1))
        newest = db_helper.create_package(member, organization, lunch={"total": 20}, created_at=datetime(2024, 2, 1))
        db_helper.create_package(
            member, organization, dinner={"total": 5}, created_at=datetime(2024, 3, 1), status="deactivated"
        )
        db_helper.create_package(
            member, organization, dinner={"total": 5}, created_at=datetime(2024, 3, 2), is_active=False
        )

        package = package_service.get_active_package(member)
        assert package.id == newest
        assert package.lunch.enabled is True

    def test_no_active_package(self, package_service, member):
        assert package_service.get_active_package(member) is None
        assert package_service.get_package_view(member, date(2024, 3, 1)) is None

    def test_package_view_count_based(self, package_service, token_service, member, breakfast_package):
        token_service.ensure_tokens_for_date(member, date(2024, 3, 1))

        view = package_service.get_package_view(member, date(2024, 3, 1))

        assert view["id"] == breakfast_package
        assert view["package_type"] == "count_based"
        assert view["balance_cents"] is None
        assert view["days_remaining"] == 305
        assert view["is_unlimited"] is False
        assert view["is_expired"] is False
        breakfast = view["meals"]["breakfast"]
        assert (breakfast["total"], breakfast["consumed"], breakfast["remaining"]) == (30, 5, 25)
        assert breakfast["token_stats"]["pending"] == 1
        assert view["meals"]["lunch"]["enabled"] is False
        assert view["meals"]["lunch"]["remaining"] == 0

    def test_package_view_balance_based(self, package_service, db_helper, member, organization):
        db_helper.create_package(
            member,
            organization,
            package_type="balance_based",
            lunch={"enabled": True, "price_cents": 1500},
            balance_cents=10000,
        )

        view = package_service.get_package_view(member, date(2024, 3, 1))

        assert view["balance_cents"] == 10000
        assert view["is_unlimited"] is True
        assert view["days_remaining"] is None
        assert view["meals"]["lunch"]["remaining"] is None
        assert view["meals"]["lunch"]["price_cents"] == 1500

    def test_package_for_token_without_recorded_package(self, package_service, db_helper, member, organization):
        """未记录套餐的餐券按组织和有效期匹配套餐"""
        other_org = db_helper.create_organization(name="North Campus")
        covering = db_helper.create_package(
            member, organization, breakfast={"total": 5},
            valid_from=date(2024, 1, 1), valid_until=date(2024, 12, 31), created_at=datetime(2024, 1, 1),
        )
        db_helper.create_package(
            member, organization, breakfast={"total": 5},
            valid_from=date(2025, 1, 1), created_at=datetime(2024, 6, 1),
        )
        db_helper.create_package(member, other_org, breakfast={"total": 5}, created_at=datetime(2024, 7, 1))

        token = MealToken(
            id=1, organization_id=organization, member_id=member.member_id, member_type=member.member_type,
            meal_type=MealType.BREAKFAST, token_date=date(2024, 3, 1), token_no=1, status=TokenStatus.PENDING,
        )
        assert package_service.get_package_for_token(token).id == covering

        later = token.model_copy(update={"token_date": date(2026, 1, 1)})
        assert package_service.get_package_for_token(later).id != covering

        elsewhere = token.model_copy(update={"organization_id": 999})
        assert package_service.get_package_for_token(elsewhere) is None

    def test_record_collection_count_based(self, package_service, test_db, breakfast_package):
        with test_db.transaction() as conn:
            package = package_service.record_collection(conn, breakfast_package, MealType.BREAKFAST)
        assert package.breakfast.consumed == 6
        assert package.breakfast.remaining == 24

    def test_record_collection_quota_exhausted(self, package_service, test_db, db_helper, member, organization):
        """次数用完后拒绝扣减，已用次数不超过总次数"""
        package_id = db_helper.create_package(member, organization, lunch={"total": 2, "consumed": 2})

        with pytest.raises(QuotaExhaustedError):
            with test_db.transaction() as conn:
                package_service.record_collection(conn, package_id, "lunch")

        assert db_helper.get_package_row(package_id)["lunch_meals_consumed"] == 2

    def test_record_collection_balance_based(self, package_service, test_db, db_helper, member, organization):
        package_id = db_helper.create_package(
            member, organization, package_type="balance_based",
            dinner={"price_cents": 1200}, balance_cents=2000,
        )

        with test_db.transaction() as conn:
            package = package_service.record_collection(conn, package_id, "dinner")
        assert package.balance_cents == 800
        assert package.dinner.consumed == 1

        with pytest.raises(InsufficientBalanceError):
            with test_db.transaction() as conn:
                package_service.record_collection(conn, package_id, "dinner")
        assert db_helper.get_package_row(package_id)["balance_cents"] == 800

    def test_expire_lapsed_packages(self, package_service, db_helper, member, organization):
        lapsed = db_helper.create_package(member, organization, breakfast={"total": 5}, valid_until=date(2024, 2, 28))
        current = db_helper.create_package(member, organization, lunch={"total": 5}, valid_until=date(2024, 3, 31))

        assert package_service.expire_lapsed_packages(date(2024, 3, 1)) == 1

        assert package_service.get_package(lapsed).status == PackageStatus.EXPIRED
        assert package_service.get_package(lapsed).is_active is False
        assert package_service.get_package(current).status == PackageStatus.ACTIVE
        # 再次执行不会重复处理
        assert package_service.expire_lapsed_packages(date(2024, 3, 1)) == 0
