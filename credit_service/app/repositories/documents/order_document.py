from __future__ import annotations

from pydantic import Field

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.offer import OfferCycle
from ...models.order import CombinedOrder, Order, OrderStatus, OrderStatusEntry


class OrderDocument(BaseDocument):
    """MongoDB orders 컬렉션 도큐먼트 모델.

    offer_id / user_id / parent_id 는 문자열로 저장한다.
    payment_intent_secret 은 도메인 모델에서 직렬화 제외되므로 저장되지 않는다.
    """

    offer_id: str
    user_id: str
    offer_group: str
    cycle: OfferCycle
    custom_cycle: int | None = None
    quantity: int = 1
    total: float = 0
    currency: str = "usd"
    country: str | None = None
    tax_rate: float | None = None
    status: OrderStatus = OrderStatus.PENDING
    starts: MongoDateTime | None = None
    expires: MongoDateTime | None = None
    token_count: int | None = None
    combined_items: list[CombinedOrder] = Field(default_factory=list)
    history: list[OrderStatusEntry] = Field(default_factory=list)
    parent_id: str | None = None
    payment_intent_id: str | None = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderDocument":
        data = build_document_data_from_domain(order)
        return cls.model_validate(data)

    def to_domain(self) -> Order:
        data = self.model_dump(exclude={"id"})
        return Order(id=from_object_id(self.id), **data)
