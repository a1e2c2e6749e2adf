"""크레딧 생애주기 오케스트레이터.

오퍼 조회 -> 주문 생성 -> (외부 결제) -> 원장 반영 -> 만료 점검 순서를 묶는다.
UserCredits 를 변경하는 작업은 유저별 락 안에서 실행된다.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from pymongo.database import Database

from common.types.datetime import utc_now

from ..config import CreditsConfig
from ..exceptions import (
    AlreadySubscribedError,
    EntityNotFoundError,
    IllegalStateError,
    InvalidPaymentError,
    InvalidTokenCountError,
    PaymentErrorCode,
    PaymentErrorDetails,
)
from ..models.offer import Offer
from ..models.order import Order, OrderStatus
from ..models.token_timetable import TokenTimetable
from ..models.user_credits import (
    ActivatedOffer,
    ExpiryCheckResult,
    LowTokenThreshold,
    UserCredits,
)
from ..repositories.interfaces import (
    OfferRepositoryInterface,
    OrderRepositoryInterface,
    TokenTimetableRepositoryInterface,
    UserCreditsRepositoryInterface,
)
from .expiry_sweeper import ExpirySweeper
from .ledger_updater import LedgerUpdater
from .offer_resolver import OfferResolver
from .order_builder import OrderBuilder
from .payment_client import PaymentClientInterface
from .user_lock import UserLockRegistry


logger = logging.getLogger(__name__)


class CreditService:
    def __init__(
        self,
        offer_repo: OfferRepositoryInterface,
        order_repo: OrderRepositoryInterface,
        user_credits_repo: UserCreditsRepositoryInterface,
        token_repo: TokenTimetableRepositoryInterface,
        payment_client: PaymentClientInterface | None = None,
        config: CreditsConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
        locks: UserLockRegistry | None = None,
    ) -> None:
        self._order_repo = order_repo
        self._user_credits_repo = user_credits_repo
        self._token_repo = token_repo
        self._payment_client = payment_client
        self._config = config or CreditsConfig()
        self._clock = clock
        self._locks = locks if locks is not None else UserLockRegistry()

        self.resolver = OfferResolver(offer_repo, user_credits_repo)
        self.builder = OrderBuilder(offer_repo, order_repo, user_credits_repo, clock)
        self.ledger = LedgerUpdater(offer_repo, order_repo, token_repo, clock)
        self.sweeper = ExpirySweeper(order_repo, user_credits_repo, token_repo, clock)

    # --- offers --------------------------------------------------------------------
    def load_offers(
        self, user_id: str | None = None, env_tags: list[str] | None = None
    ) -> list[Offer]:
        return self.resolver.load_offers(user_id, env_tags)

    # --- orders --------------------------------------------------------------------
    def create_order(
        self,
        offer_id: str,
        user_id: str,
        quantity: int | None = None,
        currency: str | None = None,
    ) -> Order:
        """pending 주문을 만들고, 결제 클라이언트가 있으면 결제 의도를 붙인다."""

        with self._locks.lock(user_id):
            result = self.builder.create_order(
                offer_id,
                user_id,
                quantity=quantity,
                currency=currency or self._config.default_currency,
            )
            order = result.order
            logger.info(
                "order created total=%s",
                order.total,
                extra={
                    "order_id": order.id,
                    "user_id": user_id,
                    "offer_group": order.offer_group,
                },
            )

            if self._payment_client is None:
                return order

            intent = self._payment_client.create_payment_intent(order)
            if intent is None:
                raise InvalidPaymentError(
                    f"payment intent could not be created for order {order.id}",
                    PaymentErrorDetails(
                        order_id=order.id,
                        error_code=PaymentErrorCode.INTENT_CREATION_FAILED,
                    ),
                )

            order.payment_intent_id = intent.payment_intent_id
            order.payment_intent_secret = intent.payment_intent_secret
            order.updated_at = self._clock()
            return self._order_repo.save(order)

    def ensure_not_subscribed(self, user_id: str, offer_id: str) -> None:
        existing = self.is_user_already_subscribed(user_id, offer_id)
        if existing is not None:
            raise AlreadySubscribedError(
                f"user {user_id} already holds a paid order for offer {offer_id}",
                existing,
            )

    def is_user_already_subscribed(self, user_id: str, offer_id: str) -> Order | None:
        return self._order_repo.find_paid_by_offer(user_id, offer_id)

    def order_status_changed(self, order_id: str, status: OrderStatus) -> Order:
        order = self._load_order(order_id)
        now = self._clock()
        order.record_status(OrderStatus(status), f"Status changed to {status}", at=now)
        order.updated_at = now
        return self._order_repo.save(order)

    # --- payment completion --------------------------------------------------------
    def apply_paid_order(self, user_credits: UserCredits, order: Order) -> ActivatedOffer:
        return self.ledger.apply_paid_order(user_credits, order)

    def after_execute(self, order: Order) -> UserCredits:
        """결제 게이트웨이 결과를 주문과 유저 크레딧에 반영한다."""

        if self._payment_client is None:
            raise IllegalStateError("no payment client configured")

        with self._locks.lock(order.user_id):
            # 넘겨받은 객체가 아니라 락 안에서 다시 읽은 저장본으로 판단한다.
            stored = self._load_order(order.id)
            self._reject_applied(stored)
            if stored.payment_intent_secret is None:
                stored.payment_intent_secret = order.payment_intent_secret
            executed = self._payment_client.after_payment_executed(stored)
            return self._complete(executed)

    def execute_free_order(self, order_id: str) -> UserCredits:
        """결제 금액이 0 인 주문을 게이트웨이 없이 paid 로 처리한다."""

        user_id = self._load_order(order_id).user_id

        with self._locks.lock(user_id):
            order = self._load_order(order_id)
            self._reject_applied(order)
            if order.total != 0:
                raise InvalidPaymentError(
                    f"order {order.id} is not free (total={order.total})",
                    PaymentErrorDetails(
                        order_id=order.id, error_code=PaymentErrorCode.NOT_FREE
                    ),
                )
            order.record_status(
                OrderStatus.PAID, "Free subscription succeeded", at=self._clock()
            )
            return self._complete(order)

    def _load_order(self, order_id: str | None) -> Order:
        order = self._order_repo.find_by_id(order_id) if order_id is not None else None
        if order is None:
            raise EntityNotFoundError("Order", order_id)
        return order

    def _reject_applied(self, order: Order) -> None:
        """이미 paid 이거나 원장에 반영된(expires 가 채워진) 주문은 다시 실행하지 않는다."""

        if order.status == OrderStatus.PAID or order.expires is not None:
            raise InvalidPaymentError(
                f"order {order.id} is already paid",
                PaymentErrorDetails(
                    order_id=order.id, error_code=PaymentErrorCode.DUPLICATE_ATTEMPT
                ),
            )

    def _complete(self, order: Order) -> UserCredits:
        user_credits = self._user_credits_repo.find_by_user_id(order.user_id)
        if user_credits is None:
            raise IllegalStateError(f"user credits of {order.user_id} are missing")

        self.ledger.update_credits(user_credits, order)

        order.updated_at = self._clock()
        self._order_repo.save(order)
        saved = self._user_credits_repo.save(user_credits)

        logger.info(
            "payment completed status=%s",
            order.status,
            extra={
                "order_id": order.id,
                "user_id": order.user_id,
                "status": order.status,
            },
        )
        return saved

    # --- balance -------------------------------------------------------------------
    def load_user_credits(self, user_id: str) -> UserCredits | None:
        return self._user_credits_repo.find_by_user_id(user_id)

    def list_user_ids(self) -> list[str]:
        return self._user_credits_repo.list_user_ids()

    def remaining_tokens(self, user_id: str) -> UserCredits:
        user_credits = self._user_credits_repo.find_by_user_id(user_id)
        if user_credits is None:
            raise EntityNotFoundError("UserCredits", user_id)
        return user_credits

    def consume_tokens(self, user_id: str, offer_group: str, count: int) -> TokenTimetable:
        """소비 원장 라인(-count)을 남기고 offer_group 잔액에서 뺀다.

        그룹 항목이 없으면 음수 잔액으로 새로 만든다.
        """

        if count <= 0:
            raise InvalidTokenCountError(
                f"consumed token count must be positive (got {count})"
            )

        with self._locks.lock(user_id):
            user_credits = self._user_credits_repo.find_by_user_id(user_id)
            if user_credits is None:
                raise IllegalStateError(f"user credits of {user_id} are missing")

            now = self._clock()
            entry = self._token_repo.create(
                TokenTimetable(
                    user_id=user_id,
                    offer_group=offer_group,
                    tokens=-count,
                    created_at=now,
                )
            )

            activated = user_credits.find_offer(offer_group)
            if activated is None:
                user_credits.offers.append(
                    ActivatedOffer(offer_group=offer_group, starts=now, tokens=-count)
                )
            else:
                activated.tokens -= count

            self._user_credits_repo.save(user_credits)
            logger.debug(
                "tokens consumed",
                extra={"user_id": user_id, "offer_group": offer_group, "tokens": -count},
            )
            return entry

    tokens_consumed = consume_tokens

    # --- expiry --------------------------------------------------------------------
    def check_for_expired_orders(
        self,
        user_id: str,
        warn_before_millis: int | None = None,
        low_thresholds: list[LowTokenThreshold] | None = None,
    ) -> ExpiryCheckResult:
        expiry_cfg = self._config.expiry
        if warn_before_millis is None:
            warn_before_millis = expiry_cfg.warn_before_millis
        if low_thresholds is None:
            low_thresholds = expiry_cfg.low_tokens

        with self._locks.lock(user_id):
            return self.sweeper.check_for_expired_orders(
                user_id, warn_before_millis, low_thresholds
            )

    def check_low_tokens(
        self, user_id: str, lows: list[LowTokenThreshold] | None = None
    ) -> list[ActivatedOffer]:
        if lows is None:
            lows = self._config.expiry.low_tokens
        return self.sweeper.check_low_tokens(user_id, lows)

    def token_history(
        self, user_id: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[TokenTimetable], int]:
        return self._token_repo.list_by_user(user_id, page, page_size)


def build_credit_service(
    database: Database,
    payment_client: PaymentClientInterface | None = None,
    config: CreditsConfig | None = None,
) -> CreditService:
    """MongoDB 저장소로 CreditService 를 조립한다."""

    from ..repositories.offer_repository import OfferRepository
    from ..repositories.order_repository import OrderRepository
    from ..repositories.token_timetable_repository import TokenTimetableRepository
    from ..repositories.user_credits_repository import UserCreditsRepository

    return CreditService(
        offer_repo=OfferRepository(database),
        order_repo=OrderRepository(database),
        user_credits_repo=UserCreditsRepository(database),
        token_repo=TokenTimetableRepository(database),
        payment_client=payment_client,
        config=config,
    )
