from __future__ import annotations

from pydantic import Field

from common.mongo.types import BaseDocument, build_document_data_from_domain, from_object_id

from ...models.offer import CombinedOffer, Offer, OfferCycle, OfferKind


class OfferDocument(BaseDocument):
    """MongoDB offers 컬렉션 도큐먼트 모델."""

    name: str = ""
    kind: OfferKind = OfferKind.SUBSCRIPTION
    offer_group: str
    cycle: OfferCycle
    custom_cycle: int | None = None
    token_count: int | None = None
    price: float = 0
    currency: str = "usd"
    quantity_limit: int | None = None
    append_date: bool = False
    tags: list[str] = Field(default_factory=list)
    unlocked_by: list[str] = Field(default_factory=list)
    has_dependent_offers: bool = False
    overriding_key: str | None = None
    weight: int = 0
    popular: int = 0
    combined_items: list[CombinedOffer] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, offer: Offer) -> "OfferDocument":
        data = build_document_data_from_domain(offer)
        return cls.model_validate(data)

    def to_domain(self) -> Offer:
        data = self.model_dump(exclude={"id", "created_at", "updated_at"})
        return Offer(id=from_object_id(self.id), **data)
