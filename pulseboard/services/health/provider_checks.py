"""
Provider 探测

每个配置发送一次最小化的非流式算术挑战请求：
- OpenAI / Gemini（OpenAI 兼容模式）：chat/completions
- Anthropic：messages

另外对端点域名做一次独立的 HEAD 请求，得到网络层 ping 延迟。
无论成功与否，每个配置都返回一条 CheckResult，本模块不向外抛异常。
"""

from __future__ import annotations

import asyncio
import random
import re
import time
from dataclasses import dataclass
from typing import Any, assert_never
from urllib.parse import urlsplit

import httpx

from pulseboard.core.config import settings
from pulseboard.core.http_client import create_async_http_client
from pulseboard.core.logging import logger
from pulseboard.core.metrics import record_probe, record_probe_batch
from pulseboard.schemas.health import CheckResult, HealthStatus, ProviderConfig, ProviderType
from pulseboard.utils.time_utils import Datetime

ANTHROPIC_VERSION = "2023-06-01"
MAX_OUTPUT_TOKENS = 16
_NUMBER_RE = re.compile(r"-?\d+")


@dataclass(frozen=True)
class Challenge:
    prompt: str
    expected: str


def generate_challenge(rng: random.Random | None = None) -> Challenge:
    rng = rng or random.Random()
    a, b = rng.randint(1, 50), rng.randint(1, 50)
    return Challenge(
        prompt=f"What is {a} + {b}? Reply with only the number.",
        expected=str(a + b),
    )


def validate_response(text: str, expected: str) -> bool:
    if not isinstance(text, str):
        return False
    return expected in _NUMBER_RE.findall(text)


def _as_text(value: Any) -> str:
    """上游 content 可能是字符串、分段列表或其他标量，统一折叠成字符串"""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "".join(
            _as_text(part.get("text")) if isinstance(part, dict) else _as_text(part)
            for part in value
        )
    return str(value)


def build_request(config: ProviderConfig, prompt: str) -> tuple[dict[str, str], dict[str, Any]]:
    messages = [{"role": "user", "content": prompt}]
    match config.type:
        case ProviderType.OPENAI | ProviderType.GEMINI:
            headers = {"Authorization": f"Bearer {config.api_key or ''}"}
            body = {
                "model": config.model,
                "messages": messages,
                "max_tokens": MAX_OUTPUT_TOKENS,
                "temperature": 0,
            }
        case ProviderType.ANTHROPIC:
            headers = {"x-api-key": config.api_key or "", "anthropic-version": ANTHROPIC_VERSION}
            body = {
                "model": config.model,
                "messages": messages,
                "max_tokens": MAX_OUTPUT_TOKENS,
            }
        case _:
            assert_never(config.type)
    return headers, body


def extract_text(provider_type: ProviderType, data: dict[str, Any]) -> str:
    match provider_type:
        case ProviderType.OPENAI | ProviderType.GEMINI:
            return _as_text(data["choices"][0]["message"]["content"])
        case ProviderType.ANTHROPIC:
            return "".join(
                _as_text(block.get("text"))
                for block in data["content"]
                if isinstance(block, dict) and block.get("type") == "text"
            )
        case _:
            assert_never(provider_type)


async def measure_ping(client: httpx.AsyncClient, endpoint: str) -> int | None:
    """对端点 origin 发 HEAD，只要有响应即视为网络可达"""
    parts = urlsplit(endpoint)
    if not parts.scheme or not parts.netloc:
        return None
    start = time.perf_counter()
    try:
        await client.head(f"{parts.scheme}://{parts.netloc}/", timeout=settings.PROBE_PING_TIMEOUT_SECONDS)
    except httpx.HTTPError:
        return None
    return int((time.perf_counter() - start) * 1000)


async def check_provider(
    client: httpx.AsyncClient,
    config: ProviderConfig,
    challenge: Challenge | None = None,
) -> CheckResult:
    challenge = challenge or generate_challenge()
    headers, body = build_request(config, challenge.prompt)

    ping_task = asyncio.create_task(measure_ping(client, config.endpoint))
    start = time.perf_counter()
    latency_ms: int | None = None
    try:
        resp = await client.post(
            config.endpoint,
            headers=headers,
            json=body,
            timeout=settings.PROBE_TIMEOUT_SECONDS,
        )
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        if resp.status_code >= 400:
            status, message = HealthStatus.FAILED, f"HTTP {resp.status_code}"
        else:
            try:
                text = extract_text(config.type, resp.json())
                answered = validate_response(text, challenge.expected)
            except (ValueError, KeyError, IndexError, TypeError, AttributeError):
                status, message = HealthStatus.VALIDATION_FAILED, "响应格式无法解析"
            else:
                latency_ms = elapsed_ms
                if not answered:
                    status, message = HealthStatus.VALIDATION_FAILED, "回答校验未通过"
                elif elapsed_ms > settings.PROBE_DEGRADED_THRESHOLD_MS:
                    status, message = HealthStatus.DEGRADED, f"响应较慢 ({elapsed_ms} ms)"
                else:
                    status, message = HealthStatus.OPERATIONAL, "正常"
    except httpx.TimeoutException:
        status, message = HealthStatus.ERROR, "请求超时"
    except httpx.HTTPError as exc:
        status, message = HealthStatus.ERROR, f"请求异常: {exc.__class__.__name__}"

    ping_latency_ms = await ping_task
    record_probe(config.type.value, status.value, latency_ms)
    if status is not HealthStatus.OPERATIONAL:
        logger.info(f"provider_check_unhealthy id={config.id} name={config.name} status={status.value} msg={message}")

    return CheckResult(
        id=config.id,
        name=config.name,
        type=config.type,
        endpoint=config.endpoint,
        model=config.model,
        status=status,
        latency_ms=latency_ms,
        ping_latency_ms=ping_latency_ms,
        checked_at=Datetime.to_iso_string(Datetime.now()),
        message=message,
        group_name=config.group_name,
    )


async def run_provider_checks(
    configs: list[ProviderConfig],
    client: httpx.AsyncClient | None = None,
) -> list[CheckResult]:
    """并发探测所有配置，结果顺序不保证与输入一致"""
    if not configs:
        return []

    record_probe_batch()
    if client is not None:
        return await _check_all(client, configs)

    async with create_async_http_client() as own_client:
        return await _check_all(own_client, configs)


async def _check_all(client: httpx.AsyncClient, configs: list[ProviderConfig]) -> list[CheckResult]:
    outcomes = await asyncio.gather(
        *(check_provider(client, cfg) for cfg in configs),
        return_exceptions=True,
    )
    results = []
    for config, outcome in zip(configs, outcomes):
        if isinstance(outcome, Exception):
            # 单个配置的意外异常不能拖垮整批探测
            logger.opt(exception=outcome).error(f"provider_check_crashed id={config.id} name={config.name} err={outcome}")
            record_probe(config.type.value, HealthStatus.ERROR.value, None)
            outcome = _error_result(config, f"探测异常: {outcome.__class__.__name__}")
        elif isinstance(outcome, BaseException):
            raise outcome
        results.append(outcome)
    return results


def _error_result(config: ProviderConfig, message: str) -> CheckResult:
    return CheckResult(
        id=config.id,
        name=config.name,
        type=config.type,
        endpoint=config.endpoint,
        model=config.model,
        status=HealthStatus.ERROR,
        latency_ms=None,
        ping_latency_ms=None,
        checked_at=Datetime.to_iso_string(Datetime.now()),
        message=message,
        group_name=config.group_name,
    )
