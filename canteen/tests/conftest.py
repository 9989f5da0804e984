"""
测试配置文件
提供测试所需的fixtures和配置
"""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from ..api.deps import get_db
from ..app import create_app
from ..core.database import DatabaseManager
from ..core.events import EventBus
from ..services.organization_service import OrganizationService
from ..services.package_service import PackageService
from ..services.selection_service import SelectionService
from ..services.token_service import TokenService
from .utils.db_helper import DatabaseHelper

# 2024-03-01 是星期五
SCENARIO_DATE = date(2024, 3, 1)


@pytest.fixture
def test_db():
    """测试数据库（内存 DuckDB）"""
    db_manager = DatabaseManager(db_path=":memory:", timeout=2.0)
    db_manager.init_database()

    yield db_manager

    db_manager.close()


@pytest.fixture
def db_helper(test_db):
    return DatabaseHelper(test_db)


@pytest.fixture
def event_bus(test_db):
    return EventBus(test_db)


@pytest.fixture
def published_events(event_bus):
    """收集事务提交后发布的领域事件"""
    events = []
    event_bus.subscribe(events.append)
    return events


@pytest.fixture
def organization_service(test_db):
    return OrganizationService(test_db)


@pytest.fixture
def package_service(test_db):
    return PackageService(test_db)


@pytest.fixture
def selection_service(test_db, event_bus):
    return SelectionService(test_db, event_bus)


@pytest.fixture
def token_service(test_db, event_bus, package_service, selection_service, organization_service):
    return TokenService(
        test_db,
        packages=package_service,
        selections=selection_service,
        organizations=organization_service,
        events=event_bus,
        conflict_retries=3,
        enforce_skip_deadline=False,
    )


@pytest.fixture
def organization(db_helper):
    """默认餐次时间的组织"""
    return db_helper.create_organization()


@pytest.fixture
def member(db_helper, organization):
    """示例学生会员"""
    return db_helper.create_member("S1001", "student", organization, name="测试学生")


@pytest.fixture
def breakfast_package(db_helper, member, organization):
    """早餐次卡：共30次已用5次，午餐、晚餐未开通，有效期为2024年全年"""
    return db_helper.create_package(
        member,
        organization,
        breakfast={"enabled": True, "days": [], "total": 30, "consumed": 5},
        valid_from=date(2024, 1, 1),
        valid_until=date(2024, 12, 31),
    )


@pytest.fixture
def full_package(db_helper, member, organization):
    """三餐次卡：晚餐仅周一、周三供应"""
    return db_helper.create_package(
        member,
        organization,
        breakfast={"enabled": True, "total": 30},
        lunch={"enabled": True, "total": 30},
        dinner={"enabled": True, "days": ["monday", "wednesday"], "total": 10},
        valid_from=date(2024, 1, 1),
        valid_until=date(2024, 12, 31),
    )


@pytest.fixture
def app_instance(test_db):
    """测试应用，数据库依赖替换为内存数据库"""
    app = create_app()
    app.dependency_overrides[get_db] = lambda: test_db

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app_instance):
    """测试客户端"""
    return TestClient(app_instance)
