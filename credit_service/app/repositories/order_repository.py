from __future__ import annotations

from datetime import datetime, timezone

from bson.errors import InvalidId
from pymongo.database import Database

from common.mongo.types import to_object_id

from .documents.order_document import OrderDocument
from .interfaces import OrderRepositoryInterface
from ..models.order import Order, OrderStatus


class OrderRepository(OrderRepositoryInterface):
    """orders 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["orders"]

    @staticmethod
    def _from_document(doc: dict) -> Order:
        return OrderDocument.model_validate(doc).to_domain()

    def create(self, order: Order) -> Order:
        now = datetime.now(timezone.utc)
        if order.created_at is None:
            order.created_at = now
        order.updated_at = now

        payload = OrderDocument.from_domain(order).to_mongo_record()
        result = self._col.insert_one(payload)
        order.id = str(result.inserted_id)
        return order

    def find_by_id(self, order_id: str) -> Order | None:
        try:
            object_id = to_object_id(order_id)
        except (InvalidId, TypeError):
            return None
        doc = self._col.find_one({"_id": object_id})
        if not doc:
            return None
        return self._from_document(doc)

    def save(self, order: Order) -> Order:
        if order.id is None:
            return self.create(order)

        order.updated_at = datetime.now(timezone.utc)
        payload = OrderDocument.from_domain(order).to_mongo_record()
        result = self._col.replace_one({"_id": to_object_id(order.id)}, payload)
        if result.matched_count == 0:
            raise RuntimeError(f"order not found for update (id={order.id})")
        return order

    def find_paid_with_expiry(self, user_id: str, offer_group: str) -> list[Order]:
        # None 필드는 저장하지 않지만, 과거 데이터의 null 도 함께 걸러낸다.
        cursor = self._col.find(
            {
                "user_id": str(user_id),
                "offer_group": offer_group,
                "status": OrderStatus.PAID.value,
                "expires": {"$exists": True, "$ne": None},
            }
        )
        return [self._from_document(doc) for doc in cursor]

    def find_paid_by_offer(self, user_id: str, offer_id: str) -> Order | None:
        doc = self._col.find_one(
            {
                "user_id": str(user_id),
                "offer_id": str(offer_id),
                "status": OrderStatus.PAID.value,
            }
        )
        if not doc:
            return None
        return self._from_document(doc)
