from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from itertools import count

from credit_service.app.config import CreditsConfig
from credit_service.app.models.offer import CombinedOffer, Offer, OfferCycle
from credit_service.app.models.order import Order, OrderStatus, OrderStatusEntry
from credit_service.app.models.token_timetable import TokenTimetable
from credit_service.app.models.user_credits import UserCredits
from credit_service.app.services.credit_service import CreditService
from credit_service.app.services.user_lock import UserLockRegistry


NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def build_offer(
    offer_id: str,
    *,
    offer_group: str = "standard",
    cycle: OfferCycle = OfferCycle.MONTHLY,
    token_count: int | None = 60,
    price: float = 10,
    quantity_limit: int | None = None,
    append_date: bool = False,
    unlocked_by: list[str] | None = None,
    overriding_key: str | None = None,
    weight: int = 0,
    tags: list[str] | None = None,
    combined_items: list[CombinedOffer] | None = None,
    custom_cycle: int | None = None,
) -> Offer:
    return Offer(
        id=offer_id,
        name=f"offer {offer_id}",
        offer_group=offer_group,
        cycle=cycle,
        custom_cycle=custom_cycle,
        token_count=token_count,
        price=price,
        quantity_limit=quantity_limit,
        append_date=append_date,
        unlocked_by=unlocked_by or [],
        overriding_key=overriding_key,
        weight=weight,
        tags=tags or [],
        combined_items=combined_items or [],
    )


def build_paid_order(
    *,
    user_id: str,
    offer_id: str,
    offer_group: str,
    starts: datetime,
    expires: datetime,
    token_count: int,
) -> Order:
    return Order(
        offer_id=offer_id,
        user_id=user_id,
        offer_group=offer_group,
        cycle=OfferCycle.MONTHLY,
        status=OrderStatus.PAID,
        starts=starts,
        expires=expires,
        token_count=token_count,
        history=[OrderStatusEntry(status=OrderStatus.PAID, date=starts, message="paid")],
    )


class FakeOfferRepository:
    def __init__(self, offers: list[Offer] | None = None) -> None:
        self.offers: dict[str, Offer] = {}
        for offer in offers or []:
            self.add(offer)

    def add(self, offer: Offer) -> Offer:
        assert offer.id is not None
        self.offers[offer.id] = offer
        return offer

    def find_by_id(self, offer_id: str) -> Offer | None:
        return self.offers.get(str(offer_id))

    def find_regular(self, env_tags: list[str] | None = None) -> list[Offer]:
        if not env_tags:
            return [offer for offer in self.offers.values() if not offer.unlocked_by]
        return [
            offer
            for offer in self.offers.values()
            if all(tag in offer.tags for tag in env_tags)
        ]

    def find_unlocked_by(self, offer_groups: list[str]) -> list[Offer]:
        return [
            offer
            for offer in self.offers.values()
            if any(group in offer_groups for group in offer.unlocked_by)
        ]


class FakeOrderRepository:
    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.save_calls: list[str] = []
        self._ids = count(1)

    def create(self, order: Order) -> Order:
        order.id = f"order-{next(self._ids)}"
        self.orders[order.id] = order
        return order

    def find_by_id(self, order_id: str) -> Order | None:
        # 저장소에서 읽을 때마다 새 객체를 돌려준다.
        stored = self.orders.get(str(order_id))
        return stored.model_copy(deep=True) if stored is not None else None

    def save(self, order: Order) -> Order:
        assert order.id is not None
        self.orders[order.id] = order
        self.save_calls.append(order.id)
        return order

    def find_paid_with_expiry(self, user_id: str, offer_group: str) -> list[Order]:
        return [
            order
            for order in self.orders.values()
            if order.user_id == user_id
            and order.offer_group == offer_group
            and order.status == OrderStatus.PAID
            and order.expires is not None
        ]

    def find_paid_by_offer(self, user_id: str, offer_id: str) -> Order | None:
        for order in self.orders.values():
            if (
                order.user_id == user_id
                and order.offer_id == offer_id
                and order.status == OrderStatus.PAID
            ):
                return order
        return None

    def children_of(self, parent_id: str) -> list[Order]:
        return [order for order in self.orders.values() if order.parent_id == parent_id]


class FakeUserCreditsRepository:
    def __init__(self) -> None:
        self.by_user: dict[str, UserCredits] = {}
        self.save_calls = 0
        self._ids = count(1)

    def find_by_user_id(self, user_id: str) -> UserCredits | None:
        return self.by_user.get(str(user_id))

    def save(self, user_credits: UserCredits) -> UserCredits:
        if user_credits.id is None:
            user_credits.id = f"credits-{next(self._ids)}"
        self.by_user[user_credits.user_id] = user_credits
        self.save_calls += 1
        return user_credits

    def list_user_ids(self) -> list[str]:
        return list(self.by_user)


class FakeTokenTimetableRepository:
    def __init__(self) -> None:
        self.entries: list[TokenTimetable] = []
        self._ids = count(1)

    def create(self, entry: TokenTimetable) -> TokenTimetable:
        stored = entry.model_copy(update={"id": f"tt-{next(self._ids)}"})
        self.entries.append(stored)
        return stored

    def consumption_in_date_range(
        self,
        user_id: str,
        offer_group: str,
        starts: datetime,
        expires: datetime,
    ) -> int:
        return sum(
            entry.tokens
            for entry in self.entries
            if entry.user_id == user_id
            and entry.offer_group == offer_group
            and entry.tokens < 0
            and starts < entry.created_at < expires
        )

    def list_by_user(
        self, user_id: str, page: int, page_size: int
    ) -> tuple[list[TokenTimetable], int]:
        items = [entry for entry in self.entries if entry.user_id == user_id]
        items.sort(key=lambda entry: entry.created_at, reverse=True)
        start = (page - 1) * page_size
        return items[start : start + page_size], len(items)

    def for_group(self, offer_group: str) -> list[TokenTimetable]:
        return [entry for entry in self.entries if entry.offer_group == offer_group]


class FakePaymentClient:
    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.result_status = OrderStatus.PAID
        self.intent_available = True
        self.intent_calls: list[str] = []
        self.executed_calls: list[str] = []

    def create_payment_intent(self, order: Order) -> Order | None:
        assert order.id is not None
        self.intent_calls.append(order.id)
        if not self.intent_available:
            return None
        return order.model_copy(
            update={
                "payment_intent_id": f"pi_{order.id}",
                "payment_intent_secret": f"secret_{order.id}",
            }
        )

    def after_payment_executed(self, order: Order) -> Order:
        assert order.id is not None
        self.executed_calls.append(order.id)
        order.record_status(
            self.result_status, f"Payment {self.result_status}", at=self.clock()
        )
        return order


@dataclass
class CreditServiceFixture:
    service: CreditService
    clock: FakeClock
    offer_repo: FakeOfferRepository
    order_repo: FakeOrderRepository
    user_credits_repo: FakeUserCreditsRepository
    token_repo: FakeTokenTimetableRepository
    payment_client: FakePaymentClient
    locks: UserLockRegistry
    config: CreditsConfig = field(default_factory=CreditsConfig)


def build_fixture(
    offers: list[Offer] | None = None,
    config: CreditsConfig | None = None,
    locks: UserLockRegistry | None = None,
) -> CreditServiceFixture:
    clock = FakeClock()
    offer_repo = FakeOfferRepository(offers)
    order_repo = FakeOrderRepository()
    user_credits_repo = FakeUserCreditsRepository()
    token_repo = FakeTokenTimetableRepository()
    payment_client = FakePaymentClient(clock)
    locks = locks if locks is not None else UserLockRegistry()
    config = config or CreditsConfig()
    service = CreditService(
        offer_repo=offer_repo,
        order_repo=order_repo,
        user_credits_repo=user_credits_repo,
        token_repo=token_repo,
        payment_client=payment_client,
        config=config,
        clock=clock,
        locks=locks,
    )
    return CreditServiceFixture(
        service=service,
        clock=clock,
        offer_repo=offer_repo,
        order_repo=order_repo,
        user_credits_repo=user_credits_repo,
        token_repo=token_repo,
        payment_client=payment_client,
        locks=locks,
        config=config,
    )
