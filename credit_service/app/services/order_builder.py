"""주문 생성.

선택한 오퍼로 pending 주문을 만들고, 번들(combined_items)을 하위 주문 라인으로 펼친 뒤
유저의 UserCredits 에 구독 사본을 기록한다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from common.types.datetime import utc_now
from common.types.objectid import ids_equal

from ..exceptions import EntityNotFoundError, InvalidOrderError
from ..models.offer import Offer
from ..models.order import CombinedOrder, Order, OrderStatus, OrderStatusEntry
from ..models.user_credits import Subscription, UserCredits
from ..repositories.interfaces import (
    OfferRepositoryInterface,
    OrderRepositoryInterface,
    UserCreditsRepositoryInterface,
)


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UnresolvedCombinedItem:
    """오퍼 정의의 combined_items 중 하위 오퍼를 찾지 못해 건너뛴 항목."""

    parent_offer_id: str | None
    offer_id: str
    offer_group: str


@dataclass(slots=True)
class OrderBuildResult:
    order: Order
    user_credits: UserCredits
    unresolved_items: list[UnresolvedCombinedItem] = field(default_factory=list)


def compute_total(quantity: int | None, offer: Offer) -> float:
    """수량 제한을 검사하고 결제 금액을 계산한다. 수량이 없으면 단가 그대로."""

    if quantity is None:
        return offer.price
    if quantity <= 0:
        raise InvalidOrderError(f"Requested quantity must be positive (got {quantity})")
    if offer.quantity_limit is not None and quantity > offer.quantity_limit:
        raise InvalidOrderError("Requested quantity exceeds the limit")
    return offer.price * quantity


class OrderBuilder:
    def __init__(
        self,
        offer_repo: OfferRepositoryInterface,
        order_repo: OrderRepositoryInterface,
        user_credits_repo: UserCreditsRepositoryInterface,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._offer_repo = offer_repo
        self._order_repo = order_repo
        self._user_credits_repo = user_credits_repo
        self._clock = clock

    def create_order(
        self,
        offer_id: str,
        user_id: str,
        quantity: int | None = None,
        currency: str = "usd",
    ) -> OrderBuildResult:
        offer = self._offer_repo.find_by_id(offer_id)
        if offer is None:
            raise EntityNotFoundError("Offer", offer_id)

        total = compute_total(quantity, offer)
        self._reject_self_reference(offer)

        now = self._clock()
        order = Order(
            offer_id=offer.id or offer_id,
            user_id=user_id,
            offer_group=offer.offer_group,
            cycle=offer.cycle,
            custom_cycle=offer.custom_cycle,
            quantity=quantity if quantity is not None else 1,
            total=total,
            currency=currency,
            status=OrderStatus.PENDING,
            # 단위 토큰 수를 그대로 복사한다. 수량은 원장 반영 시 곱한다.
            token_count=offer.token_count,
            history=[
                OrderStatusEntry(
                    status=OrderStatus.PENDING, date=now, message="Order created"
                )
            ],
            created_at=now,
            updated_at=now,
        )

        unresolved = self.prefill_combined_orders(offer, order)
        order = self._order_repo.create(order)
        user_credits = self.on_order_change(user_id, order, offer)

        return OrderBuildResult(
            order=order, user_credits=user_credits, unresolved_items=unresolved
        )

    def prefill_combined_orders(
        self, offer: Offer, order: Order
    ) -> list[UnresolvedCombinedItem]:
        """offer.combined_items 각각을 order.combined_items 라인으로 펼친다.

        찾을 수 없는 하위 오퍼는 건너뛰고 반환 목록에 담는다 (주문은 부분 번들로 생성된다).
        """

        unresolved: list[UnresolvedCombinedItem] = []
        for item in offer.combined_items:
            combined_offer = self._offer_repo.find_by_id(item.offer_id)
            if combined_offer is None:
                logger.warning(
                    "combined item offer_id=%s of offer %s can't be resolved, skipping",
                    item.offer_id,
                    offer.id,
                    extra={"offer_id": offer.id, "offer_group": item.offer_group},
                )
                unresolved.append(
                    UnresolvedCombinedItem(
                        parent_offer_id=offer.id,
                        offer_id=item.offer_id,
                        offer_group=item.offer_group,
                    )
                )
                continue

            quantity = item.quantity or 1
            order.combined_items.append(
                CombinedOrder(
                    offer_id=item.offer_id,
                    offer_group=item.offer_group,
                    quantity=quantity,
                    token_count=quantity * (combined_offer.token_count or 0),
                    cycle=combined_offer.cycle,
                    custom_cycle=combined_offer.custom_cycle,
                )
            )
        return unresolved

    def on_order_change(self, user_id: str, order: Order, offer: Offer) -> UserCredits:
        """주문 상태를 UserCredits.subscriptions 에 반영하고 저장한다."""

        user_credits = self._user_credits_repo.find_by_user_id(user_id)
        if user_credits is None:
            user_credits = UserCredits(user_id=user_id)

        self.update_subscriptions_on_order_change(user_credits, offer, order)
        return self._user_credits_repo.save(user_credits)

    def update_subscriptions_on_order_change(
        self, user_credits: UserCredits, offer: Offer, order: Order
    ) -> None:
        assert order.id is not None
        for candidate in self.build_subscriptions(offer, order):
            existing = user_credits.find_subscription(order.id, candidate.offer_id)
            if existing is None:
                user_credits.subscriptions.append(candidate)
                continue
            existing.status = order.status
            existing.starts = candidate.starts
            existing.expires = candidate.expires

    @staticmethod
    def build_subscriptions(offer: Offer, order: Order) -> list[Subscription]:
        """루트 주문 1개 + 번들 항목마다 1개의 구독 사본을 만든다."""

        assert order.id is not None
        subscriptions = [
            Subscription(
                order_id=order.id,
                offer_id=order.offer_id,
                offer_group=order.offer_group,
                name=offer.name,
                status=order.status,
                cycle=order.cycle,
                custom_cycle=order.custom_cycle,
                quantity=order.quantity,
                total=order.total,
                currency=order.currency,
                tokens=(offer.token_count or 0) * order.quantity,
                starts=order.starts,
                expires=order.expires,
            )
        ]
        for item in order.combined_items:
            if ids_equal(item.offer_id, order.offer_id):
                continue
            subscriptions.append(
                Subscription(
                    order_id=order.id,
                    offer_id=item.offer_id,
                    offer_group=item.offer_group,
                    name=f"{offer.name}: {item.offer_group}" if offer.name else item.offer_group,
                    status=order.status,
                    cycle=item.cycle or order.cycle,
                    custom_cycle=item.custom_cycle,
                    quantity=item.quantity * order.quantity,
                    total=0,
                    currency=order.currency,
                    tokens=item.token_count * order.quantity,
                    starts=item.starts,
                    expires=item.expires,
                )
            )
        return subscriptions

    @staticmethod
    def _reject_self_reference(offer: Offer) -> None:
        for item in offer.combined_items:
            if offer.id is not None and ids_equal(item.offer_id, offer.id):
                raise InvalidOrderError(
                    f"offer {offer.id} includes itself in its combined items"
                )
