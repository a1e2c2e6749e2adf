from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic.functional_serializers import PlainSerializer
from pydantic.functional_validators import BeforeValidator


def utc_now() -> datetime:
    """현재 시각(UTC, tz-aware). 서비스 레이어의 기본 clock 으로 사용한다."""
    return datetime.now(timezone.utc)


def as_utc(value: Any) -> Any:
    """naive datetime 은 UTC 로 간주하고, aware datetime 은 UTC 로 변환한다."""
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def serialize_datetime_to_utc_iso8601(value: datetime) -> str:
    """모든 datetime을 UTC 기준 ISO8601(+타임존) 문자열로 직렬화한다."""
    return as_utc(value).isoformat()


# 입력은 UTC aware 로 정규화하고, JSON 직렬화 시에는 ISO8601 문자열로 내보낸다.
UtcDateTime = Annotated[
    datetime,
    BeforeValidator(as_utc),
    PlainSerializer(
        serialize_datetime_to_utc_iso8601,
        return_type=str,
        when_used="json",
    ),
]
