"""결제 완료 주문을 유저 잔액 시트에 반영한다.

결제가 paid 로 확정된 주문(또는 무료 주문)에 대해:

1. 시작일 결정 (명시적 starts / append_date 정책)
2. cycle x quantity 로 만료일 계산
3. offer_group 의 ActivatedOffer 에 기간 덮어쓰기 + 토큰 가산, 원장(TokenTimetable) 기록
4. 오퍼의 combined_items 를 한 단계 펼쳐 하위 주문(parent_id=루트)과 원장 라인 생성

루트와 모든 번들 항목의 기간/토큰을 먼저 계산한 뒤에 저장소에 쓴다.
계산 중 하나라도 실패하면 원장 라인과 하위 주문은 하나도 남지 않는다.

주문당 한 번만 반영된다. order.expires 가 이미 채워져 있으면 반영된 주문으로 보고 건너뛴다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from common.types.datetime import utc_now
from common.types.objectid import ids_equal

from ..exceptions import IllegalStateError, InvalidOrderError, OfferMissingError
from ..models.offer import CombinedOffer, Offer
from ..models.order import Order, OrderStatus, OrderStatusEntry
from ..models.token_timetable import TokenTimetable
from ..models.user_credits import ActivatedOffer, UserCredits
from ..repositories.interfaces import (
    OfferRepositoryInterface,
    OrderRepositoryInterface,
    TokenTimetableRepositoryInterface,
)
from .cycle import calculate_expiry_date


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CombinedGrant:
    """번들 항목 하나에 대해 계산된 지급 내역."""

    item: CombinedOffer
    sub_offer: Offer
    offer_group: str
    quantity: int
    starts: datetime
    expires: datetime
    tokens: int


def append_or_push_active_offer(
    user_credits: UserCredits,
    offer_group: str,
    starts: datetime,
    expires: datetime,
    tokens: int,
) -> ActivatedOffer:
    """offer_group 항목이 있으면 기간을 덮어쓰고 토큰을 더한다. 없으면 새로 추가한다."""

    existing = user_credits.find_offer(offer_group)
    if existing is not None:
        existing.starts = starts
        existing.expires = expires
        existing.tokens += tokens
        return existing

    activated = ActivatedOffer(
        offer_group=offer_group, starts=starts, expires=expires, tokens=tokens
    )
    user_credits.offers.append(activated)
    return activated


class LedgerUpdater:
    def __init__(
        self,
        offer_repo: OfferRepositoryInterface,
        order_repo: OrderRepositoryInterface,
        token_repo: TokenTimetableRepositoryInterface,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._offer_repo = offer_repo
        self._order_repo = order_repo
        self._token_repo = token_repo
        self._clock = clock

    # --- start date ----------------------------------------------------------------
    def compute_start_date(
        self,
        user_id: str,
        offer_group: str,
        *,
        explicit_starts: datetime | None = None,
        append_date: bool = False,
    ) -> datetime:
        """주문(또는 번들 항목)의 시작 시각을 결정한다.

        - explicit_starts 가 있으면 그대로 쓰되, 이미 지났으면 InvalidOrderError
        - append_date=False 면 지금
        - append_date=True 면 같은 그룹의 paid 주문 중 가장 늦은 expires (지났으면 지금)
        """

        now = self._clock()
        if explicit_starts is not None:
            if explicit_starts < now:
                raise InvalidOrderError(
                    f"Explicit start date has passed: {explicit_starts.isoformat()}"
                )
            return explicit_starts

        if not append_date:
            return now

        previous = self._order_repo.find_paid_with_expiry(user_id, offer_group)
        expiries = [order.expires for order in previous if order.expires is not None]
        if not expiries:
            return now

        latest = max(expiries)
        return now if latest < now else latest

    # --- credits -------------------------------------------------------------------
    def update_credits(
        self, user_credits: UserCredits, order: Order
    ) -> ActivatedOffer | None:
        """주문 상태를 구독 사본에 반영하고, paid 이면 원장에 적용한다.

        구독 사본이 없으면 UserCredits 가 손상된 것이므로 IllegalStateError.
        """

        assert order.id is not None
        subscription = user_credits.find_subscription(order.id, order.offer_id)
        if subscription is None:
            raise IllegalStateError(
                f"user credits of {user_credits.user_id} have no subscription for "
                f"order {order.id}"
            )

        for item_subscription in user_credits.subscriptions:
            if ids_equal(item_subscription.order_id, order.id):
                item_subscription.status = order.status

        if order.status != OrderStatus.PAID:
            return None

        return self.apply_paid_order(user_credits, order)

    def apply_paid_order(self, user_credits: UserCredits, order: Order) -> ActivatedOffer:
        """paid 주문의 효과를 user_credits 에 반영한다. 저장은 호출자가 한다.

        order 의 starts / expires / token_count 와 combined_items 도 계산값으로 채워진다.
        """

        if order.status != OrderStatus.PAID:
            raise IllegalStateError(
                f"order {order.id} is {order.status}, only paid orders reach the ledger"
            )

        if order.expires is not None:
            activated = user_credits.find_offer(order.offer_group)
            if activated is None:
                raise IllegalStateError(
                    f"order {order.id} was applied but offer group "
                    f"{order.offer_group} is missing from the balance sheet"
                )
            logger.info(
                "order already applied to ledger, skipping",
                extra={"order_id": order.id, "user_id": order.user_id},
            )
            return activated

        offer = self._offer_repo.find_by_id(order.offer_id)
        if offer is None:
            raise OfferMissingError(
                f"offer {order.offer_id} of order {order.id} no longer exists"
            )

        starts = self.compute_start_date(
            order.user_id,
            order.offer_group,
            explicit_starts=order.starts,
            append_date=offer.append_date,
        )
        expires = calculate_expiry_date(
            starts, order.cycle, order.quantity, order.custom_cycle
        )
        tokens = (order.token_count or 0) * order.quantity
        grants = self._plan_combined_grants(order, offer, starts, expires)

        order.starts = starts
        order.expires = expires
        order.token_count = tokens

        activated = append_or_push_active_offer(
            user_credits, order.offer_group, starts, expires, tokens
        )
        if tokens > 0:
            self._record_grant(order.user_id, order.offer_group, tokens, order.id)

        assert order.id is not None
        subscription = user_credits.find_subscription(order.id, order.offer_id)
        if subscription is not None:
            subscription.starts = starts
            subscription.expires = expires
            subscription.tokens = tokens

        logger.info(
            "applied paid order tokens=%d expires=%s",
            tokens,
            expires.isoformat(),
            extra={
                "order_id": order.id,
                "user_id": order.user_id,
                "offer_group": order.offer_group,
            },
        )

        for grant in grants:
            self._apply_combined_grant(user_credits, order, grant)

        return activated

    # --- combined items ------------------------------------------------------------
    def _plan_combined_grants(
        self,
        root_order: Order,
        root_offer: Offer,
        root_starts: datetime,
        root_expires: datetime,
    ) -> list[CombinedGrant]:
        """번들 항목별 기간과 토큰을 계산한다. 저장소에는 쓰지 않는다."""

        grants: list[CombinedGrant] = []
        # 같은 그룹의 append_date 항목이 여럿이면 앞 항목의 만료 뒤로 잇는다.
        planned_expiry: dict[str, datetime] = {}

        for item in root_offer.combined_items:
            if root_offer.id is not None and ids_equal(item.offer_id, root_offer.id):
                logger.warning(
                    "offer %s includes itself in combined items, skipping",
                    root_offer.id,
                    extra={"order_id": root_order.id},
                )
                continue

            sub_offer = self._offer_repo.find_by_id(item.offer_id)
            if sub_offer is None:
                logger.warning(
                    "combined item offer_id=%s can't be resolved at payment time, skipping",
                    item.offer_id,
                    extra={"order_id": root_order.id, "offer_group": item.offer_group},
                )
                continue

            if sub_offer.combined_items:
                # 번들 안의 번들은 펼치지 않는다.
                logger.warning(
                    "nested combined items of offer %s are not expanded",
                    sub_offer.id,
                    extra={"order_id": root_order.id},
                )

            offer_group = item.offer_group or sub_offer.offer_group
            quantity = (item.quantity or 1) * root_order.quantity

            if sub_offer.append_date:
                starts = self.compute_start_date(
                    root_order.user_id, offer_group, append_date=True
                )
                earlier = planned_expiry.get(offer_group)
                if earlier is not None and earlier > starts:
                    starts = earlier
                expires = calculate_expiry_date(
                    starts, sub_offer.cycle, quantity, sub_offer.custom_cycle
                )
                planned_expiry[offer_group] = expires
            else:
                starts = root_starts
                expires = root_expires

            grants.append(
                CombinedGrant(
                    item=item,
                    sub_offer=sub_offer,
                    offer_group=offer_group,
                    quantity=quantity,
                    starts=starts,
                    expires=expires,
                    tokens=(sub_offer.token_count or 0) * quantity,
                )
            )

        return grants

    def _apply_combined_grant(
        self,
        user_credits: UserCredits,
        root_order: Order,
        grant: CombinedGrant,
    ) -> ActivatedOffer:
        activated = append_or_push_active_offer(
            user_credits, grant.offer_group, grant.starts, grant.expires, grant.tokens
        )

        now = self._clock()
        child = self._order_repo.create(
            Order(
                offer_id=grant.item.offer_id,
                user_id=root_order.user_id,
                offer_group=grant.offer_group,
                cycle=grant.sub_offer.cycle,
                custom_cycle=grant.sub_offer.custom_cycle,
                quantity=grant.quantity,
                total=0,
                currency=root_order.currency,
                status=OrderStatus.PAID,
                starts=grant.starts,
                expires=grant.expires,
                token_count=grant.tokens,
                parent_id=root_order.id,
                history=[
                    OrderStatusEntry(
                        status=OrderStatus.PAID,
                        date=now,
                        message=f"Included in order {root_order.id}",
                    )
                ],
                created_at=now,
                updated_at=now,
            )
        )
        if grant.tokens > 0:
            self._record_grant(
                root_order.user_id, grant.offer_group, grant.tokens, child.id
            )

        for line in root_order.combined_items:
            if (
                ids_equal(line.offer_id, grant.item.offer_id)
                and line.offer_group == grant.item.offer_group
            ):
                line.starts = grant.starts
                line.expires = grant.expires
                line.token_count = grant.tokens

        assert root_order.id is not None
        subscription = user_credits.find_subscription(root_order.id, grant.item.offer_id)
        if subscription is not None:
            subscription.status = OrderStatus.PAID
            subscription.starts = grant.starts
            subscription.expires = grant.expires
            subscription.tokens = grant.tokens

        return activated

    def _record_grant(
        self, user_id: str, offer_group: str, tokens: int, order_id: str | None
    ) -> TokenTimetable:
        return self._token_repo.create(
            TokenTimetable(
                user_id=user_id,
                offer_group=offer_group,
                tokens=tokens,
                order_id=order_id,
                created_at=self._clock(),
            )
        )
