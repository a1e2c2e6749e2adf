from __future__ import annotations

from datetime import timedelta

import pytest

from credit_service.app.exceptions import EntityNotFoundError
from credit_service.app.models.order import Order, OrderStatus
from credit_service.app.models.user_credits import ActivatedOffer, LowTokenThreshold
from credit_service.tests.fakes import (
    NOW,
    CreditServiceFixture,
    build_fixture,
    build_offer,
)


def _purchase(fixture: CreditServiceFixture, offer_id: str = "monthly") -> Order:
    """주문 생성 -> paid -> 원장 반영까지 마친 주문을 반환한다."""

    order = fixture.service.builder.create_order(offer_id, "user-1").order
    order.record_status(OrderStatus.PAID, "Payment succeeded", at=fixture.clock())
    user_credits = fixture.user_credits_repo.find_by_user_id("user-1")
    assert user_credits is not None
    fixture.service.ledger.update_credits(user_credits, order)
    fixture.order_repo.save(order)
    fixture.user_credits_repo.save(user_credits)
    return order


def _fixture() -> CreditServiceFixture:
    return build_fixture([build_offer("monthly", offer_group="standard", token_count=60)])


def test_expired_group_is_removed_and_order_expires() -> None:
    fixture = _fixture()
    order = _purchase(fixture)
    fixture.clock.advance(days=1)
    fixture.service.consume_tokens("user-1", "standard", 10)
    fixture.clock.advance(days=40)
    saves_before = fixture.user_credits_repo.save_calls

    result = fixture.service.sweeper.check_for_expired_orders("user-1", 0)

    [expired] = result.expired
    assert expired.offer_group == "standard"
    # 지급 60 - 소비 10 = 50 을 회수한다.
    assert expired.tokens == 0
    assert result.warnings == []

    user_credits = fixture.user_credits_repo.find_by_user_id("user-1")
    assert user_credits is not None
    assert user_credits.find_offer("standard") is None
    assert fixture.user_credits_repo.save_calls == saves_before + 1

    stored = fixture.order_repo.find_by_id(order.id)
    assert stored is not None
    assert stored.status == OrderStatus.EXPIRED
    assert stored.history[-1].status == OrderStatus.EXPIRED


def test_processing_expired_group_twice_returns_zero() -> None:
    fixture = _fixture()
    _purchase(fixture)
    fixture.clock.advance(days=40)

    first = fixture.service.sweeper.process_expired_order_group("user-1", "standard")
    second = fixture.service.sweeper.process_expired_order_group("user-1", "standard")

    assert first == 60
    assert second == 0


def test_orders_not_yet_expired_are_left_untouched() -> None:
    fixture = _fixture()
    order = _purchase(fixture)

    assert fixture.service.sweeper.process_expired_order_group("user-1", "standard") == 0
    assert fixture.order_repo.find_by_id(order.id).status == OrderStatus.PAID


def test_expiring_soon_group_is_reported_as_warning() -> None:
    fixture = _fixture()
    _purchase(fixture)
    fixture.clock.advance(days=28)
    saves_before = fixture.user_credits_repo.save_calls

    result = fixture.service.sweeper.check_for_expired_orders(
        "user-1", warn_before_millis=5 * 24 * 60 * 60 * 1000
    )

    assert result.expired == []
    assert [w.offer_group for w in result.warnings] == ["standard"]
    assert fixture.user_credits_repo.save_calls == saves_before


def test_low_balance_is_warned_once() -> None:
    fixture = _fixture()
    _purchase(fixture)
    fixture.clock.advance(days=28)
    lows = [LowTokenThreshold(offer_group="standard", min=60)]

    result = fixture.service.sweeper.check_for_expired_orders(
        "user-1", warn_before_millis=5 * 24 * 60 * 60 * 1000, low_thresholds=lows
    )

    assert [w.offer_group for w in result.warnings] == ["standard"]


def test_low_balance_without_expiry_window() -> None:
    fixture = _fixture()
    _purchase(fixture)
    fixture.service.consume_tokens("user-1", "standard", 55)

    result = fixture.service.sweeper.check_for_expired_orders(
        "user-1", 0, [LowTokenThreshold(offer_group="standard", min=10)]
    )

    assert result.expired == []
    [warning] = result.warnings
    assert warning.tokens == 5


def test_expired_group_is_not_repeated_in_low_token_warnings() -> None:
    fixture = _fixture()
    _purchase(fixture)
    fixture.clock.advance(days=40)

    result = fixture.service.sweeper.check_for_expired_orders(
        "user-1", 0, [LowTokenThreshold(offer_group="standard", min=1000)]
    )

    assert [e.offer_group for e in result.expired] == ["standard"]
    assert result.warnings == []


def test_groups_without_expiry_are_ignored() -> None:
    fixture = _fixture()
    _purchase(fixture)
    user_credits = fixture.user_credits_repo.find_by_user_id("user-1")
    user_credits.offers.append(ActivatedOffer(offer_group="calls", starts=NOW, tokens=-3))
    fixture.clock.advance(days=40)

    result = fixture.service.sweeper.check_for_expired_orders("user-1", 0)

    assert [e.offer_group for e in result.expired] == ["standard"]
    assert [o.offer_group for o in user_credits.offers] == ["calls"]


def test_unknown_user_raises_not_found() -> None:
    fixture = _fixture()

    with pytest.raises(EntityNotFoundError):
        fixture.service.sweeper.check_for_expired_orders("nobody")

    with pytest.raises(EntityNotFoundError):
        fixture.service.sweeper.check_low_tokens("nobody", [])


def test_check_low_tokens_lists_groups_under_threshold() -> None:
    fixture = _fixture()
    _purchase(fixture)

    lows = fixture.service.sweeper.check_low_tokens(
        "user-1",
        [
            LowTokenThreshold(offer_group="standard", min=100),
            LowTokenThreshold(offer_group="calls", min=100),
        ],
    )

    assert [offer.offer_group for offer in lows] == ["standard"]
