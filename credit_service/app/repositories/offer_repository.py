from __future__ import annotations

from bson.errors import InvalidId
from pymongo.database import Database

from common.mongo.types import to_object_id

from .documents.offer_document import OfferDocument
from .interfaces import OfferRepositoryInterface
from ..models.offer import Offer


class OfferRepository(OfferRepositoryInterface):
    """offers 컬렉션에 대한 MongoDB 접근 레이어 (읽기 전용)."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["offers"]

    @staticmethod
    def _from_document(doc: dict) -> Offer:
        return OfferDocument.model_validate(doc).to_domain()

    def find_by_id(self, offer_id: str) -> Offer | None:
        try:
            object_id = to_object_id(offer_id)
        except (InvalidId, TypeError):
            return None
        doc = self._col.find_one({"_id": object_id})
        if not doc:
            return None
        return self._from_document(doc)

    def find_regular(self, env_tags: list[str] | None = None) -> list[Offer]:
        """조건 없이 노출되는 오퍼 조회.

        - env_tags 가 없으면 unlocked_by 가 비어 있는 오퍼
        - env_tags 가 있으면 모든 태그를 가진 오퍼 (환경 필터는 호출자의 책임)
        """

        if not env_tags:
            query: dict = {"unlocked_by": {"$size": 0}}
        else:
            query = {"tags": {"$all": list(env_tags)}}
        return [self._from_document(doc) for doc in self._col.find(query)]

    def find_unlocked_by(self, offer_groups: list[str]) -> list[Offer]:
        if not offer_groups:
            return []
        cursor = self._col.find({"unlocked_by": {"$in": list(offer_groups)}})
        return [self._from_document(doc) for doc in cursor]
