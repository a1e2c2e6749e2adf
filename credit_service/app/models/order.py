"""주문 도메인 모델.

주문은 pending 으로 생성되고, 결제 결과에 따라 paid / refused 로 전이한다.
paid 이후에는 status 와 history 만 바뀔 수 있다 (만료 스윕 시 expired).
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from common.types.datetime import UtcDateTime
from common.types.objectid import ObjectIdStr

from .offer import OfferCycle


class OrderStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    REFUSED = "refused"
    ERROR = "error"
    INCONSISTENT = "inconsistent"
    PARTIAL = "partial"
    EXPIRED = "expired"


class OrderStatusEntry(BaseModel):
    """주문 상태 변경 이력 한 줄."""

    status: OrderStatus
    date: UtcDateTime
    message: str = ""
    payload: str | None = None


class CombinedOrder(BaseModel):
    """번들 오퍼의 하위 항목이 주문에 반영된 결과."""

    offer_id: ObjectIdStr
    offer_group: str
    quantity: int = 1
    token_count: int = 0
    cycle: OfferCycle | None = None
    custom_cycle: int | None = None
    starts: UtcDateTime | None = None
    expires: UtcDateTime | None = None


class Order(BaseModel):
    """구매 기록."""

    id: ObjectIdStr | None = None
    offer_id: ObjectIdStr
    user_id: ObjectIdStr
    offer_group: str
    cycle: OfferCycle
    custom_cycle: int | None = None
    quantity: int = 1
    total: float = 0
    currency: str = "usd"
    country: str | None = None
    tax_rate: float | None = None
    status: OrderStatus = OrderStatus.PENDING
    starts: UtcDateTime | None = None
    expires: UtcDateTime | None = None
    # 생성 시에는 오퍼의 단위 토큰 수, 원장 반영 후에는 수량이 곱해진 값
    token_count: int | None = None
    combined_items: list[CombinedOrder] = Field(default_factory=list)
    history: list[OrderStatusEntry] = Field(default_factory=list)
    parent_id: ObjectIdStr | None = None  # 번들 전개로 생성된 하위 주문이면 루트 주문 ID
    payment_intent_id: str | None = None
    # 결제 세션 동안만 전달되며 저장하지 않는다.
    payment_intent_secret: str | None = Field(default=None, exclude=True)
    created_at: UtcDateTime | None = None
    updated_at: UtcDateTime | None = None

    def record_status(
        self,
        status: OrderStatus,
        message: str,
        *,
        at: datetime,
        payload: str | None = None,
    ) -> None:
        """상태를 바꾸고 history 에 한 줄을 추가한다."""
        self.status = status
        self.history.append(
            OrderStatusEntry(status=status, date=at, message=message, payload=payload)
        )
