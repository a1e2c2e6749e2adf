from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..models.offer import Offer
from ..models.order import Order
from ..models.token_timetable import TokenTimetable
from ..models.user_credits import UserCredits


class OfferRepositoryInterface(Protocol):
    """OfferRepository가 따라야 할 최소한의 계약.

    크레딧 엔진은 오퍼를 읽기만 한다. 등록/수정은 카탈로그 관리 쪽의 책임이다.
    """

    def find_by_id(self, offer_id: str) -> Offer | None:  # pragma: no cover - Protocol
        ...

    def find_regular(
        self, env_tags: list[str] | None = None
    ) -> list[Offer]:  # pragma: no cover - Protocol
        """env_tags 가 없으면 unlocked_by 가 빈 오퍼, 있으면 태그를 모두 가진 오퍼."""
        ...

    def find_unlocked_by(
        self, offer_groups: list[str]
    ) -> list[Offer]:  # pragma: no cover - Protocol
        """unlocked_by 가 offer_groups 와 하나라도 겹치는 오퍼."""
        ...


class OrderRepositoryInterface(Protocol):
    """OrderRepository가 따라야 할 최소한의 계약."""

    def create(self, order: Order) -> Order:  # pragma: no cover - Protocol
        """주문을 저장하고 id 가 채워진 주문을 반환한다."""
        ...

    def find_by_id(self, order_id: str) -> Order | None:  # pragma: no cover - Protocol
        ...

    def save(self, order: Order) -> Order:  # pragma: no cover - Protocol
        """메모리에서 변경한 주문을 그대로 덮어쓴다."""
        ...

    def find_paid_with_expiry(
        self, user_id: str, offer_group: str
    ) -> list[Order]:  # pragma: no cover - Protocol
        """(user_id, offer_group, status=paid, expires 존재) 조건의 주문. 정렬은 보장하지 않는다."""
        ...

    def find_paid_by_offer(
        self, user_id: str, offer_id: str
    ) -> Order | None:  # pragma: no cover - Protocol
        ...


class UserCreditsRepositoryInterface(Protocol):
    """UserCreditsRepository가 따라야 할 최소한의 계약.

    - user_id 당 하나의 도큐먼트만 존재한다.
    """

    def find_by_user_id(
        self, user_id: str
    ) -> UserCredits | None:  # pragma: no cover - Protocol
        ...

    def save(self, user_credits: UserCredits) -> UserCredits:  # pragma: no cover - Protocol
        """user_id 기준 upsert."""
        ...

    def list_user_ids(self) -> list[str]:  # pragma: no cover - Protocol
        ...


class TokenTimetableRepositoryInterface(Protocol):
    """TokenTimetableRepository가 따라야 할 최소한의 계약.

    - 추가 전용 원장이므로 수정/삭제 메서드는 없다.
    """

    def create(self, entry: TokenTimetable) -> TokenTimetable:  # pragma: no cover - Protocol
        ...

    def consumption_in_date_range(
        self,
        user_id: str,
        offer_group: str,
        starts: datetime,
        expires: datetime,
    ) -> int:  # pragma: no cover - Protocol
        """starts < created_at < expires 인 음수 라인의 합계 (0 이하)."""
        ...

    def list_by_user(
        self, user_id: str, page: int, page_size: int
    ) -> tuple[list[TokenTimetable], int]:  # pragma: no cover - Protocol
        ...
