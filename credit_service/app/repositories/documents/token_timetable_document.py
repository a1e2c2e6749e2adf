from __future__ import annotations

from common.mongo.types import BaseDocument, build_document_data_from_domain, from_object_id

from ...models.token_timetable import TokenTimetable


class TokenTimetableDocument(BaseDocument):
    """MongoDB token_timetable 컬렉션 도큐먼트 모델 (추가 전용)."""

    user_id: str
    offer_group: str
    tokens: int
    order_id: str | None = None

    @classmethod
    def from_domain(cls, entry: TokenTimetable) -> "TokenTimetableDocument":
        data = build_document_data_from_domain(entry)
        data["updated_at"] = entry.created_at
        return cls.model_validate(data)

    def to_domain(self) -> TokenTimetable:
        assert self.created_at is not None
        return TokenTimetable(
            id=from_object_id(self.id),
            user_id=self.user_id,
            offer_group=self.offer_group,
            tokens=self.tokens,
            order_id=self.order_id,
            created_at=self.created_at,
        )
