from __future__ import annotations

from pydantic import Field

from common.mongo.types import BaseDocument, build_document_data_from_domain, from_object_id

from ...models.user_credits import ActivatedOffer, Subscription, UserCredits


class UserCreditsDocument(BaseDocument):
    """MongoDB user_credits 컬렉션 도큐먼트 모델 (유저당 1개)."""

    user_id: str
    subscriptions: list[Subscription] = Field(default_factory=list)
    offers: list[ActivatedOffer] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, user_credits: UserCredits) -> "UserCreditsDocument":
        data = build_document_data_from_domain(user_credits)
        return cls.model_validate(data)

    def to_domain(self) -> UserCredits:
        return UserCredits(
            id=from_object_id(self.id),
            user_id=self.user_id,
            subscriptions=self.subscriptions,
            offers=self.offers,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
