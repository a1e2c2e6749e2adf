from __future__ import annotations

from datetime import datetime, timezone

from pymongo import ReturnDocument
from pymongo.database import Database

from .documents.user_credits_document import UserCreditsDocument
from .interfaces import UserCreditsRepositoryInterface
from ..models.user_credits import UserCredits


class UserCreditsRepository(UserCreditsRepositoryInterface):
    """user_credits 컬렉션에 대한 MongoDB 접근 레이어 (유저당 1 도큐먼트)."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["user_credits"]

    @staticmethod
    def _from_document(doc: dict) -> UserCredits:
        return UserCreditsDocument.model_validate(doc).to_domain()

    def find_by_user_id(self, user_id: str) -> UserCredits | None:
        doc = self._col.find_one({"user_id": str(user_id)})
        if not doc:
            return None
        return self._from_document(doc)

    def save(self, user_credits: UserCredits) -> UserCredits:
        """user_id 기준 upsert. subscriptions / offers 는 통째로 덮어쓴다."""

        now = datetime.now(timezone.utc)
        if user_credits.created_at is None:
            user_credits.created_at = now
        user_credits.updated_at = now

        payload = UserCreditsDocument.from_domain(user_credits).to_mongo_record()
        payload.pop("_id", None)
        created_at = payload.pop("created_at")

        doc = self._col.find_one_and_update(
            {"user_id": str(user_credits.user_id)},
            {"$set": payload, "$setOnInsert": {"created_at": created_at}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return self._from_document(doc)

    def list_user_ids(self) -> list[str]:
        return [str(value) for value in self._col.distinct("user_id")]
