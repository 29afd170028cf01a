from pulseboard.schemas.dashboard import DashboardData
from pulseboard.schemas.health import AvailabilityPeriod, HealthStatus, ProviderTimeline
from pulseboard.services.dashboard.fingerprint import build_payload_etag, generate_etag, serialize_for_etag

from .conftest import make_config, make_result


def _dashboard(
    status: HealthStatus = HealthStatus.OPERATIONAL,
    generated_at: int = 1,
    latency_ms: int | None = 120,
    message: str = "正常",
) -> DashboardData:
    config = make_config("A", config_id="11111111-1111-1111-1111-111111111111")
    result = make_result(config, status=status, latency_ms=latency_ms, message=message)
    result = result.model_copy(update={"checked_at": "2026-10-16T12:00:00+00:00"})
    return DashboardData(
        provider_timelines=[ProviderTimeline(id=config.id, items=[result], latest=result)],
        group_infos=[],
        last_updated=result.checked_at,
        total=1,
        poll_interval_label="60 秒",
        poll_interval_ms=60000,
        availability_stats={},
        trend_period=AvailabilityPeriod.D7,
        generated_at=generated_at,
    )


def test_generate_etag_known_values():
    # djb2-xor: 空串为种子本身
    assert generate_etag("") == '"1505"'
    assert generate_etag("a") == f'"{((5381 << 5) + 5381) ^ ord("a"):x}"'


def test_generate_etag_wraps_to_32_bits():
    etag = generate_etag("x" * 10_000)
    assert etag.startswith('"') and etag.endswith('"')
    assert int(etag.strip('"'), 16) <= 0xFFFFFFFF


def test_etag_ignores_generated_at():
    assert build_payload_etag(_dashboard(generated_at=1)) == build_payload_etag(_dashboard(generated_at=999))
    assert "generatedAt" not in serialize_for_etag(_dashboard())


def test_etag_changes_with_status():
    assert build_payload_etag(_dashboard(HealthStatus.OPERATIONAL)) != build_payload_etag(
        _dashboard(HealthStatus.FAILED)
    )


def test_serialization_is_compact_camel_case_and_keeps_unicode():
    text = serialize_for_etag(_dashboard())
    assert '"pollIntervalLabel":"60 秒"' in text
    assert ", " not in text
    # api_key 不参与序列化
    assert "sk-test" not in text


def test_etag_changes_with_latency():
    baseline = build_payload_etag(_dashboard())
    assert build_payload_etag(_dashboard(latency_ms=121)) != baseline
    assert build_payload_etag(_dashboard(latency_ms=None)) != baseline


def test_etag_changes_with_message():
    assert build_payload_etag(_dashboard(message="正常")) != build_payload_etag(_dashboard(message="响应较慢"))


def test_identical_data_gives_identical_etag():
    assert build_payload_etag(_dashboard(latency_ms=88, message="x")) == build_payload_etag(
        _dashboard(latency_ms=88, message="x")
    )
