"""유저별 크레딧 집계 도메인 모델.

유저당 하나의 UserCredits 도큐먼트가 존재하며, 일관성의 단위다.

- subscriptions: 주문 상태를 유저 화면용으로 비정규화한 사본
- offers: offer_group 별 현재 잔액과 유효 기간 (ActivatedOffer)
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from common.types.datetime import UtcDateTime
from common.types.objectid import ObjectIdStr, ids_equal

from .offer import OfferCycle
from .order import OrderStatus


class Subscription(BaseModel):
    """주문(또는 번들 하위 항목) 하나의 상태 사본."""

    order_id: ObjectIdStr
    offer_id: ObjectIdStr
    offer_group: str
    name: str = ""
    status: OrderStatus = OrderStatus.PENDING
    cycle: OfferCycle
    custom_cycle: int | None = None
    quantity: int = 1
    total: float = 0
    currency: str | None = None
    tokens: int = 0
    starts: UtcDateTime | None = None
    expires: UtcDateTime | None = None


class ActivatedOffer(BaseModel):
    """offer_group 하나의 잔액 시트 항목."""

    offer_group: str
    starts: UtcDateTime | None = None
    expires: UtcDateTime | None = None
    tokens: int = 0  # 부호 있는 누계. 소비가 지급보다 앞서면 음수가 될 수 있다.


class UserCredits(BaseModel):
    id: ObjectIdStr | None = None
    user_id: ObjectIdStr
    subscriptions: list[Subscription] = Field(default_factory=list)
    offers: list[ActivatedOffer] = Field(default_factory=list)
    created_at: UtcDateTime | None = None
    updated_at: UtcDateTime | None = None

    def find_offer(self, offer_group: str) -> ActivatedOffer | None:
        for offer in self.offers:
            if offer.offer_group == offer_group:
                return offer
        return None

    def find_subscription(self, order_id: str, offer_id: str) -> Subscription | None:
        for subscription in self.subscriptions:
            if ids_equal(subscription.order_id, order_id) and ids_equal(
                subscription.offer_id, offer_id
            ):
                return subscription
        return None

    def paid_subscriptions(self) -> list[Subscription]:
        return [s for s in self.subscriptions if s.status == OrderStatus.PAID]


class LowTokenThreshold(BaseModel):
    """offer_group 잔액이 min 이하이면 경고한다."""

    offer_group: str
    min: int


class ExpiryCheckResult(BaseModel):
    expired: list[ActivatedOffer] = Field(default_factory=list)
    warnings: list[ActivatedOffer] = Field(default_factory=list)
