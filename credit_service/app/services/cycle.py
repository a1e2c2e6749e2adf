"""갱신 주기(cycle) 기반 만료일 계산.

월/연 단위는 dateutil.relativedelta 로 달력 기준 덧셈을 한다.
(1월 31일 + 1개월 -> 2월 말일, 30일 고정 곱셈이 아니다.)
"""

from __future__ import annotations

from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from ..exceptions import InvalidCycleError
from ..models.offer import OfferCycle


_DAY_UNITS: dict[OfferCycle, int] = {
    OfferCycle.DAILY: 1,
    OfferCycle.WEEKLY: 7,
    OfferCycle.BI_WEEKLY: 14,
}

_MONTH_UNITS: dict[OfferCycle, int] = {
    OfferCycle.MONTHLY: 1,
    OfferCycle.TRIMESTER: 3,
    OfferCycle.SEMESTER: 4,
    OfferCycle.YEARLY: 12,
}


def calculate_expiry_date(
    starts: datetime,
    cycle: OfferCycle | str | None,
    quantity: int,
    custom_cycle: int | None = None,
) -> datetime:
    """starts 로부터 cycle x quantity 만큼 지난 만료 시각을 반환한다.

    - once: starts 그대로
    - custom: custom_cycle(초) x quantity, custom_cycle 은 0 이상이어야 한다.
    - 그 외 알 수 없는 값이나 None 은 InvalidCycleError
    """

    try:
        resolved = OfferCycle(cycle) if cycle is not None else None
    except ValueError as exc:
        raise InvalidCycleError(f"Invalid or missing cycle value: {cycle!r}") from exc

    if resolved is None:
        raise InvalidCycleError("Invalid or missing cycle value: None")

    if resolved == OfferCycle.ONCE:
        return starts

    if resolved in _DAY_UNITS:
        return starts + timedelta(days=_DAY_UNITS[resolved] * quantity)

    if resolved in _MONTH_UNITS:
        return starts + relativedelta(months=_MONTH_UNITS[resolved] * quantity)

    # custom
    if custom_cycle is None or custom_cycle < 0:
        raise InvalidCycleError(
            f"custom cycle requires a non-negative duration in seconds (got {custom_cycle!r})"
        )
    return starts + timedelta(seconds=custom_cycle * quantity)
