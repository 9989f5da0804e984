"""
领域事件
事务提交后发布餐券/选餐变更事件：写入 logs 审计表，并分发给进程内订阅者
（如实时推送通道）。订阅者失败只记录日志，不影响已提交的业务操作。
"""

import json
from datetime import date, datetime
from typing import Callable, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field

from .app_logger import get_logger
from .database import DatabaseManager
from .exceptions import BaseApplicationError

logger = get_logger(__name__)


class DomainEvent(BaseModel):
    """领域事件基类"""
    action: ClassVar[str] = "domain_event"

    member_id: str
    member_type: str
    organization_id: Optional[int] = None
    occurred_at: datetime = Field(default_factory=datetime.now)


class TokenCreated(DomainEvent):
    action: ClassVar[str] = "token_created"

    token_id: int
    meal_type: str
    token_date: date
    token_no: int
    status: str


class TokenStatusChanged(DomainEvent):
    action: ClassVar[str] = "token_status_changed"

    token_id: int
    meal_type: str
    token_date: date
    from_status: str
    to_status: str


class SelectionUpserted(DomainEvent):
    action: ClassVar[str] = "selection_upserted"

    selection_id: int
    date: date
    breakfast: Optional[bool] = None
    lunch: Optional[bool] = None
    dinner: Optional[bool] = None


EventHandler = Callable[[DomainEvent], None]


class EventBus:
    """事件总线"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db
        self._handlers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> EventHandler:
        self._handlers.append(handler)
        return handler

    def publish(self, event: DomainEvent):
        self._record(event)
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed for %s", handler, event.action)

    def publish_all(self, events: List[DomainEvent]):
        for event in events:
            self.publish(event)

    def _record(self, event: DomainEvent):
        """写入审计日志"""
        if self.db is None:
            return
        detail: Dict = event.model_dump(mode="json")
        try:
            self.db.execute_query(
                "INSERT INTO logs(user_id, actor_id, action, detail_json) VALUES (?,?,?,?)",
                [event.member_id, event.member_id, event.action, json.dumps(detail, ensure_ascii=False)],
            )
        except BaseApplicationError as e:
            logger.error("Failed to record %s event: %s", event.action, e.message)
