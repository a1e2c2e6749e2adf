"""유저에게 보여줄 오퍼 목록 계산.

구매(paid)한 offer_group 으로 잠금 해제되는 오퍼는 같은 overriding_key 를 가진
일반 오퍼를 대체한다. 잠금 해제 오퍼끼리 키가 겹치면 weight 가 높은 쪽이 이긴다.
"""

from __future__ import annotations

import logging

from ..models.offer import Offer
from ..repositories.interfaces import (
    OfferRepositoryInterface,
    UserCreditsRepositoryInterface,
)


logger = logging.getLogger(__name__)


def merge_offers(regular_offers: list[Offer], unlocked_offers: list[Offer]) -> list[Offer]:
    """일반 오퍼와 잠금 해제 오퍼를 overriding_key 기준으로 병합한다.

    - 같은 키의 잠금 해제 오퍼가 여럿이면 weight 최대값 하나만 남긴다 (동점이면 먼저 온 것).
    - 남은 잠금 해제 오퍼와 키가 같은 일반 오퍼는 제외한다.
    - overriding_key 가 없는 오퍼는 대체하지도, 대체되지도 않는다.
    - 결과: 대체되지 않은 일반 오퍼 + 살아남은 잠금 해제 오퍼
    """

    winners: dict[str, Offer] = {}
    keyless: list[Offer] = []
    for offer in unlocked_offers:
        if offer.overriding_key is None:
            keyless.append(offer)
            continue
        current = winners.get(offer.overriding_key)
        if current is None or offer.weight > current.weight:
            winners[offer.overriding_key] = offer

    merged = [
        offer
        for offer in regular_offers
        if offer.overriding_key is None or offer.overriding_key not in winners
    ]
    merged.extend(winners.values())
    merged.extend(keyless)
    return merged


class OfferResolver:
    def __init__(
        self,
        offer_repo: OfferRepositoryInterface,
        user_credits_repo: UserCreditsRepositoryInterface,
    ) -> None:
        self._offer_repo = offer_repo
        self._user_credits_repo = user_credits_repo

    def load_offers(
        self, user_id: str | None = None, env_tags: list[str] | None = None
    ) -> list[Offer]:
        if not user_id:
            return self._offer_repo.find_regular(env_tags)

        purchased_groups = self.purchased_offer_groups(user_id)
        unlocked = self._offer_repo.find_unlocked_by(purchased_groups)
        regular = self._offer_repo.find_regular(env_tags)

        logger.debug(
            "resolving offers regular=%d unlocked=%d",
            len(regular),
            len(unlocked),
            extra={"user_id": user_id},
        )
        return merge_offers(regular, unlocked)

    def purchased_offer_groups(self, user_id: str) -> list[str]:
        """paid 상태 구독의 offer_group 목록 (중복 제거, 순서 유지)."""

        user_credits = self._user_credits_repo.find_by_user_id(user_id)
        if user_credits is None:
            return []
        groups: list[str] = []
        for subscription in user_credits.paid_subscriptions():
            if subscription.offer_group not in groups:
                groups.append(subscription.offer_group)
        return groups
