"""
路由依赖
按请求组装服务实例；测试中通过 dependency_overrides 替换 get_db 即可切换数据库
"""

from fastapi import Depends

from ..core.database import DatabaseManager, db_manager
from ..core.events import EventBus
from ..services.organization_service import OrganizationService
from ..services.package_service import PackageService
from ..services.selection_service import SelectionService
from ..services.token_service import TokenService


def get_db() -> DatabaseManager:
    return db_manager


def get_event_bus(db: DatabaseManager = Depends(get_db)) -> EventBus:
    return EventBus(db)


def get_organization_service(db: DatabaseManager = Depends(get_db)) -> OrganizationService:
    return OrganizationService(db)


def get_package_service(db: DatabaseManager = Depends(get_db)) -> PackageService:
    return PackageService(db)


def get_selection_service(
    db: DatabaseManager = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
) -> SelectionService:
    return SelectionService(db, events)


def get_token_service(
    db: DatabaseManager = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
    packages: PackageService = Depends(get_package_service),
    organizations: OrganizationService = Depends(get_organization_service),
) -> TokenService:
    return TokenService(
        db,
        packages=packages,
        selections=SelectionService(db, events),
        organizations=organizations,
        events=events,
    )
