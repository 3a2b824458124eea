"""对外服务入口。

提供默认 ResponseDispatcher 的单例，供 HTTP 层依赖注入使用。
"""

from typing import Optional

from study_core.api.dispatcher import DispatcherConfig, ResponseDispatcher
from study_core.config.settings import settings
from study_core.providers import create_provider


_dispatcher: Optional[ResponseDispatcher] = None


def get_default_dispatcher() -> ResponseDispatcher:
    """获取默认的 ResponseDispatcher 实例（单例）。"""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = ResponseDispatcher(
            provider_client=create_provider("openai"),
            config=DispatcherConfig.from_settings(settings),
        )
    return _dispatcher
