"""
事件总线
模块与宿主之间通过事件松耦合通信（路由/页面注册、内容变更通知）
"""

from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
import asyncio
import logging

logger = logging.getLogger(__name__)


@dataclass
class Event:
    """事件数据结构"""
    name: str
    source: str  # 发送模块ID
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# 事件处理器类型
EventHandler = Callable[[Event], Any]


class EventBus:
    """事件总线"""

    def __init__(self, max_history: int = 1000):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._history: List[Event] = []
        self._max_history = max_history

    def subscribe(self, event_name: str, handler: EventHandler):
        """订阅事件"""
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"订阅事件: {event_name}")

    def unsubscribe(self, event_name: str, handler: EventHandler):
        """取消订阅"""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)
            logger.debug(f"取消订阅: {event_name}")

    def _record(self, event: Event):
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

    async def publish(self, event: Event):
        """发布事件并依次通知订阅者；单个处理器出错不影响其他处理器"""
        self._record(event)
        logger.debug(f"发布事件: {event.name} 来自 {event.source}")

        for handler in list(self._handlers.get(event.name, [])):
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"事件处理错误 {event.name}: {e}")

    def emit(self, name: str, source: str, data: Optional[Dict[str, Any]] = None):
        """便捷发布方法（同步调用，在运行中的事件循环里异步派发）"""
        event = Event(name=name, source=source, data=data or {})
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # 启动阶段没有运行中的循环，仅记录历史
            self._record(event)
            logger.debug(f"没有运行中的事件循环，仅记录历史: {name}")
            return
        loop.create_task(self.publish(event))

    def get_history(self, event_name: Optional[str] = None, limit: int = 100) -> List[Event]:
        """获取事件历史"""
        if event_name:
            filtered = [e for e in self._history if e.name == event_name]
        else:
            filtered = self._history
        return filtered[-limit:]

    def clear_history(self):
        self._history = []


# 全局事件总线实例
event_bus = EventBus()


class Events:
    """系统事件名称"""
    # 系统事件
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"

    # 模块事件
    MODULE_LOADED = "module.loaded"
    MODULE_UNLOADED = "module.unloaded"
    MODULE_ROUTES_REGISTER = "module.routes.register"
    MODULE_ROUTES_UNREGISTER = "module.routes.unregister"
    MODULE_PAGES_REGISTER = "module.pages.register"
    MODULE_PAGES_UNREGISTER = "module.pages.unregister"

    # 内容事件
    CONTENT_CREATED = "content.created"
    CONTENT_UPDATED = "content.updated"
    CONTENT_DELETED = "content.deleted"
