"""만료/잔액 부족 점검.

호출 주기는 호출자가 정한다 (스케줄러, 접근 시 점검 등).
만료된 offer_group 은 남은 지급 토큰을 회수한 뒤 잔액 시트에서 제거된다.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from common.types.datetime import utc_now

from ..exceptions import EntityNotFoundError
from ..models.order import OrderStatus
from ..models.user_credits import (
    ActivatedOffer,
    ExpiryCheckResult,
    LowTokenThreshold,
    UserCredits,
)
from ..repositories.interfaces import (
    OrderRepositoryInterface,
    TokenTimetableRepositoryInterface,
    UserCreditsRepositoryInterface,
)


logger = logging.getLogger(__name__)


def find_low_token_offers(
    user_credits: UserCredits, lows: list[LowTokenThreshold]
) -> list[ActivatedOffer]:
    """임계값 이하로 떨어진 offer_group 항목 (항목당 한 번)."""

    thresholds = {low.offer_group: low.min for low in lows}
    return [
        offer
        for offer in user_credits.offers
        if offer.offer_group in thresholds
        and offer.tokens - thresholds[offer.offer_group] <= 0
    ]


class ExpirySweeper:
    def __init__(
        self,
        order_repo: OrderRepositoryInterface,
        user_credits_repo: UserCreditsRepositoryInterface,
        token_repo: TokenTimetableRepositoryInterface,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._order_repo = order_repo
        self._user_credits_repo = user_credits_repo
        self._token_repo = token_repo
        self._clock = clock

    def check_for_expired_orders(
        self,
        user_id: str,
        warn_before_millis: int = 0,
        low_thresholds: list[LowTokenThreshold] | None = None,
    ) -> ExpiryCheckResult:
        user_credits = self._user_credits_repo.find_by_user_id(user_id)
        if user_credits is None:
            raise EntityNotFoundError("UserCredits", user_id)

        now = self._clock()
        warn_before = timedelta(milliseconds=warn_before_millis)
        result = ExpiryCheckResult()

        for offer in user_credits.offers:
            if offer.expires is None or offer.expires - now > warn_before:
                continue
            if offer.expires <= now:
                offer.tokens -= self.process_expired_order_group(
                    user_id, offer.offer_group
                )
                result.expired.append(offer)
            else:
                result.warnings.append(offer)

        if low_thresholds:
            expired_groups = {offer.offer_group for offer in result.expired}
            for offer in find_low_token_offers(user_credits, low_thresholds):
                if offer.offer_group in expired_groups:
                    continue
                if any(w.offer_group == offer.offer_group for w in result.warnings):
                    continue
                result.warnings.append(offer)

        if result.expired:
            expired_groups = {offer.offer_group for offer in result.expired}
            user_credits.offers = [
                offer
                for offer in user_credits.offers
                if offer.offer_group not in expired_groups
            ]
            self._user_credits_repo.save(user_credits)
            logger.info(
                "removed expired offer groups %s",
                sorted(expired_groups),
                extra={"user_id": user_id},
            )

        return result

    def process_expired_order_group(self, user_id: str, offer_group: str) -> int:
        """만료된 paid 주문을 expired 로 바꾸고, 회수할 미사용 토큰 수를 반환한다.

        주문마다 지급 토큰 + 유효 기간 내 소비량(음수)을 더한다.
        이미 expired 인 주문은 조회 대상이 아니므로 두 번째 호출은 0 이다.
        """

        now = self._clock()
        to_subtract = 0
        for order in self._order_repo.find_paid_with_expiry(user_id, offer_group):
            if order.status != OrderStatus.PAID:
                continue
            if order.expires is None or order.expires > now:
                continue

            consumed = 0
            if order.starts is not None:
                consumed = self._token_repo.consumption_in_date_range(
                    user_id, offer_group, order.starts, order.expires
                )
            to_subtract += (order.token_count or 0) + consumed

            order.record_status(OrderStatus.EXPIRED, "Order expired", at=now)
            order.updated_at = now
            self._order_repo.save(order)
            logger.debug(
                "order expired unused=%d",
                (order.token_count or 0) + consumed,
                extra={"order_id": order.id, "user_id": user_id, "offer_group": offer_group},
            )

        return to_subtract

    def check_low_tokens(
        self, user_id: str, lows: list[LowTokenThreshold]
    ) -> list[ActivatedOffer]:
        user_credits = self._user_credits_repo.find_by_user_id(user_id)
        if user_credits is None:
            raise EntityNotFoundError("UserCredits", user_id)
        return find_low_token_offers(user_credits, lows)
