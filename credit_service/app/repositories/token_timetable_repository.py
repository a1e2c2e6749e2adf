"""토큰 원장 레포지토리 구현체.

추가 전용 컬렉션이며, 주문 유효 기간 동안의 소비량 집계를 지원한다.
"""

from __future__ import annotations

from datetime import datetime

from pymongo import ASCENDING, IndexModel
from pymongo.database import Database

from .documents.token_timetable_document import TokenTimetableDocument
from .interfaces import TokenTimetableRepositoryInterface
from ..models.token_timetable import TokenTimetable


class TokenTimetableRepository(TokenTimetableRepositoryInterface):
    """token_timetable 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["token_timetable"]
        self._col.create_indexes(
            [
                IndexModel(
                    [
                        ("user_id", ASCENDING),
                        ("offer_group", ASCENDING),
                        ("created_at", ASCENDING),
                    ],
                    name="idx_user_group_created",
                ),
            ]
        )

    def create(self, entry: TokenTimetable) -> TokenTimetable:
        payload = TokenTimetableDocument.from_domain(entry).to_mongo_record()
        result = self._col.insert_one(payload)
        return entry.model_copy(update={"id": str(result.inserted_id)})

    def consumption_in_date_range(
        self,
        user_id: str,
        offer_group: str,
        starts: datetime,
        expires: datetime,
    ) -> int:
        """기간 내 소비(음수 라인) 합계. 경계 시각은 포함하지 않는다."""

        pipeline = [
            {
                "$match": {
                    "user_id": str(user_id),
                    "offer_group": offer_group,
                    "tokens": {"$lt": 0},
                    "created_at": {"$gt": starts, "$lt": expires},
                }
            },
            {"$group": {"_id": None, "total": {"$sum": "$tokens"}}},
        ]
        for doc in self._col.aggregate(pipeline):
            return int(doc["total"])
        return 0

    def list_by_user(
        self, user_id: str, page: int, page_size: int
    ) -> tuple[list[TokenTimetable], int]:
        if page <= 0:
            page = 1
        if page_size <= 0 or page_size > 100:
            page_size = 20

        skip = (page - 1) * page_size

        total = self._col.count_documents({"user_id": str(user_id)})
        cursor = self._col.find(
            {"user_id": str(user_id)},
            sort=[("created_at", -1), ("_id", -1)],
            skip=skip,
            limit=page_size,
        )

        items = [TokenTimetableDocument.model_validate(raw).to_domain() for raw in cursor]
        return items, total
