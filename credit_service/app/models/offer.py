"""오퍼(구매 가능한 카탈로그 항목) 도메인 모델.

오퍼는 카탈로그 관리자가 등록하며, 크레딧 엔진은 읽기만 한다.
같은 offer_group 으로 묶인 오퍼들은 만료일과 토큰 잔액을 하나의 누계로 공유한다.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from common.types.objectid import ObjectIdStr


class OfferCycle(StrEnum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"
    TRIMESTER = "trimester"
    SEMESTER = "semester"
    YEARLY = "yearly"
    CUSTOM = "custom"


class OfferKind(StrEnum):
    SUBSCRIPTION = "subscription"
    TOKENS = "tokens"
    EXPERTISE = "expertise"


class CombinedOffer(BaseModel):
    """번들 오퍼에 포함된 하위 오퍼 참조."""

    offer_id: ObjectIdStr
    offer_group: str  # 토큰을 적립/소비할 그룹. 하위 오퍼 자체의 그룹과 달라도 된다.
    quantity: int = 1  # 루트 주문 수량 1개당 포함되는 하위 오퍼 수량


class Offer(BaseModel):
    """구매 가능한 카탈로그 항목."""

    id: ObjectIdStr | None = None
    name: str = ""
    kind: OfferKind = OfferKind.SUBSCRIPTION
    offer_group: str
    cycle: OfferCycle
    custom_cycle: int | None = None  # cycle=custom 일 때만 사용 (초 단위)
    token_count: int | None = None  # 수량 1개당 지급 토큰
    price: float = 0
    currency: str = "usd"
    quantity_limit: int | None = None
    # True 면 같은 그룹의 마지막 만료일 뒤에 이어 붙이고, False 면 결제 시점부터 시작한다.
    append_date: bool = False
    tags: list[str] = Field(default_factory=list)
    unlocked_by: list[str] = Field(default_factory=list)
    has_dependent_offers: bool = False
    overriding_key: str | None = None
    weight: int = 0
    popular: int = 0
    combined_items: list[CombinedOffer] = Field(default_factory=list)

    @property
    def is_regular(self) -> bool:
        """구매 이력과 무관하게 노출되는 오퍼인지 여부."""
        return not self.unlocked_by
