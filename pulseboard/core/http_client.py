from __future__ import annotations

from typing import Any

import httpx

from pulseboard.core.config import settings

DEFAULT_HEADERS = {"User-Agent": f"{settings.PROJECT_NAME}/health-probe"}


def create_async_http_client(
    *,
    timeout: float | httpx.Timeout | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    """
    创建统一配置的 httpx.AsyncClient。

    - 默认附带项目 User-Agent，调用方传入的 headers 会覆盖同名项
    - transport 允许测试注入 httpx.MockTransport
    """
    headers = {**DEFAULT_HEADERS, **(client_kwargs.pop("headers", None) or {})}
    return httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
        headers=headers,
        **client_kwargs,
    )
