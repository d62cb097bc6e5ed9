"""Классификатор статуса: порядок правил и тексты ошибок."""

from probewatch.classifier import classify, describe
from probewatch.types import HealthStatus, Measurement, ThresholdPair, Thresholds

RT = Thresholds(response_time=ThresholdPair(warning=1000, critical=3000))


def test_failure_is_down_regardless_of_latency():
    m = Measurement(latency_ms=10, failed=True, error="Connection refused")
    assert classify(m, RT) == HealthStatus.DOWN
    assert describe(m, RT, HealthStatus.DOWN) == "Connection refused"


def test_status_code_mismatch_is_warning():
    m = Measurement(latency_ms=120, status_code=503, expected_status_code=200)
    status = classify(m, RT)
    assert status == HealthStatus.WARNING
    assert describe(m, RT, status) == "Expected status code 200, but got 503"


def test_missing_content_is_warning():
    m = Measurement(latency_ms=120, status_code=200, expected_status_code=200, content_missing="OK")
    status = classify(m, RT)
    assert status == HealthStatus.WARNING
    assert describe(m, RT, status) == 'Expected response to contain "OK", but it was not found'


def test_first_matching_rule_wins_over_latency():
    """Неожиданный код при медленном ответе остаётся warning: правило кода проверяется раньше задержки."""
    m = Measurement(latency_ms=5000, status_code=500, expected_status_code=200)
    assert classify(m, RT) == HealthStatus.WARNING


def test_latency_thresholds():
    assert classify(Measurement(latency_ms=999), RT) == HealthStatus.HEALTHY
    assert classify(Measurement(latency_ms=1000), RT) == HealthStatus.DEGRADED
    assert classify(Measurement(latency_ms=2999), RT) == HealthStatus.DEGRADED
    assert classify(Measurement(latency_ms=3000), RT) == HealthStatus.CRITICAL


def test_latency_messages():
    m = Measurement(latency_ms=3500)
    assert describe(m, RT, HealthStatus.CRITICAL) == "Response time (3500ms) exceeded critical threshold (3000ms)"
    m = Measurement(latency_ms=1500)
    assert describe(m, RT, HealthStatus.DEGRADED) == "Response time (1500ms) exceeded warning threshold (1000ms)"


def test_critical_wins_when_warning_above_critical():
    """Порог warning выше critical: задержка между ними всё равно critical."""
    inverted = Thresholds(response_time=ThresholdPair(warning=5000, critical=2000))
    m = Measurement(latency_ms=2500)
    status = classify(m, inverted)
    assert status == HealthStatus.CRITICAL
    assert describe(m, inverted, status) == "Response time (2500ms) exceeded critical threshold (2000ms)"
    assert classify(Measurement(latency_ms=6000), inverted) == HealthStatus.CRITICAL
    assert classify(Measurement(latency_ms=1500), inverted) == HealthStatus.HEALTHY


def test_missing_thresholds_skip_latency_rules():
    assert classify(Measurement(latency_ms=60000)) == HealthStatus.HEALTHY
    assert classify(Measurement(latency_ms=60000), Thresholds()) == HealthStatus.HEALTHY
    only_critical = Thresholds(response_time=ThresholdPair(critical=2000))
    assert classify(Measurement(latency_ms=1500), only_critical) == HealthStatus.HEALTHY
    assert classify(Measurement(latency_ms=2500), only_critical) == HealthStatus.CRITICAL


def test_expected_status_not_configured():
    m = Measurement(latency_ms=10, status_code=404, expected_status_code=None)
    assert classify(m, RT) == HealthStatus.HEALTHY
    assert describe(m, RT, HealthStatus.HEALTHY) is None


def test_thresholds_from_api_mapping():
    t = Thresholds.from_mapping({"responseTime": {"warning": 500, "critical": 900}, "availability": {"warning": 99, "critical": 95}})
    assert t.response_time == ThresholdPair(500, 900)
    assert t.availability == ThresholdPair(99, 95)
    assert Thresholds.from_mapping(None) == Thresholds()
