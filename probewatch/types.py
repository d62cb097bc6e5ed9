from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional


class CheckType(str, Enum):
    HTTP = "http"
    PING = "ping"
    TCP = "tcp"
    DNS = "dns"
    PORT = "port"
    SSL = "ssl"
    CUSTOM = "custom"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    WARNING = "warning"
    CRITICAL = "critical"
    DOWN = "down"
    PENDING = "pending"


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    DOWN = "down"


class AlertMetric(str, Enum):
    RESPONSE_TIME = "response_time"
    STATUS_CODE = "status_code"
    SSL = "ssl"
    AVAILABILITY = "availability"
    CUSTOM = "custom"


class AlertStatus(str, Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    CLOSED = "closed"


class IncidentSeverity(str, Enum):
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class IncidentStatus(str, Enum):
    INVESTIGATING = "investigating"
    IDENTIFIED = "identified"
    MONITORING = "monitoring"
    RESOLVED = "resolved"


OPEN_ALERT_STATUSES = frozenset({AlertStatus.PENDING.value, AlertStatus.ACKNOWLEDGED.value})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_check_type(value: Any) -> CheckType | str:
    """Известный тип -> CheckType, неизвестный остаётся строкой (решает диспетчер)."""
    try:
        return CheckType(value)
    except ValueError:
        return str(value)


def ensure_utc(ts: datetime) -> datetime:
    """Гарантировать, что datetime имеет таймзону UTC (SQLite отдаёт naive)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    if ts.tzinfo != timezone.utc:
        return ts.astimezone(timezone.utc)
    return ts


@dataclass(frozen=True)
class ThresholdPair:
    warning: Optional[float] = None
    critical: Optional[float] = None


@dataclass(frozen=True)
class Thresholds:
    """Пороговые значения сервиса: время ответа (мс) и доступность (%)."""
    response_time: Optional[ThresholdPair] = None
    availability: Optional[ThresholdPair] = None

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "Thresholds":
        # формат как в API: {"responseTime": {"warning": 1000, "critical": 3000}, ...}
        if not raw:
            return cls()

        def pair(*keys: str) -> Optional[ThresholdPair]:
            for key in keys:
                value = raw.get(key)
                if isinstance(value, Mapping):
                    return ThresholdPair(warning=value.get("warning"), critical=value.get("critical"))
            return None

        return cls(
            response_time=pair("response_time", "responseTime"),
            availability=pair("availability"),
        )


@dataclass(frozen=True)
class ServiceSpec:
    """Неизменяемый снимок сервиса, передаётся в проберы, классификатор и генератор алертов."""
    url: str
    check_type: CheckType | str = CheckType.HTTP
    id: Optional[int] = None
    name: str = ""
    interval_s: int = 60
    timeout_s: int = 30
    http_method: str = "GET"
    request_headers: Mapping[str, str] = field(default_factory=dict)
    request_body: str = ""
    expected_status_code: Optional[int] = 200
    expected_response_content: str = ""
    follow_redirects: bool = True
    verify_ssl: bool = True
    port: Optional[int] = None
    custom_config: Mapping[str, Any] = field(default_factory=dict)
    thresholds: Thresholds = field(default_factory=Thresholds)
    paused: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.url

    @classmethod
    def from_row(cls, row: Any) -> "ServiceSpec":
        """Снять снимок с ORM-строки Service."""
        return cls(
            id=row.id,
            name=row.name,
            url=row.url,
            check_type=coerce_check_type(row.check_type),
            interval_s=row.interval_s,
            timeout_s=row.timeout_s,
            http_method=row.http_method or "GET",
            request_headers=dict(row.request_headers or {}),
            request_body=row.request_body or "",
            expected_status_code=row.expected_status_code,
            expected_response_content=row.expected_response_content or "",
            follow_redirects=bool(row.follow_redirects),
            verify_ssl=bool(row.verify_ssl),
            port=row.port,
            custom_config=dict(row.custom_config or {}),
            thresholds=Thresholds(
                response_time=_pair_or_none(row.rt_warning_ms, row.rt_critical_ms),
                availability=_pair_or_none(row.availability_warning, row.availability_critical),
            ),
            paused=bool(row.paused),
        )


def _pair_or_none(warning: Optional[float], critical: Optional[float]) -> Optional[ThresholdPair]:
    if warning is None and critical is None:
        return None
    return ThresholdPair(warning=warning, critical=critical)


@dataclass(frozen=True)
class Measurement:
    """Сырые измерения одной проверки, вход классификатора."""
    latency_ms: Optional[int] = None
    failed: bool = False
    error: Optional[str] = None
    status_code: Optional[int] = None
    expected_status_code: Optional[int] = None
    content_missing: Optional[str] = None


@dataclass(frozen=True)
class CheckOutcome:
    status: HealthStatus
    response_time: int = 0
    error: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def ok(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "responseTime": self.response_time,
            "error": self.error,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class AlertDraft:
    service_id: Optional[int]
    severity: AlertSeverity
    metric: AlertMetric
    value: Any
    message: str
    check_id: Optional[int] = None
    status: AlertStatus = AlertStatus.PENDING
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class IncidentDraft:
    title: str
    services: tuple[int, ...]
    severity: IncidentSeverity
    started_at: datetime
    status: IncidentStatus = IncidentStatus.INVESTIGATING


def raw_value(value: Any) -> Any:
    """Значение enum как строка; строки из БД возвращаются как есть."""
    return value.value if isinstance(value, Enum) else value
