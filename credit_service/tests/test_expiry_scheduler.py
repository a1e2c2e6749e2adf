from __future__ import annotations

from credit_service.app.models.order import OrderStatus
from credit_service.app.scheduler.expiry_scheduler import run_expiry_sweep
from credit_service.tests.fakes import build_fixture, build_offer


def test_sweep_continues_after_user_failure() -> None:
    fixture = build_fixture([build_offer("a", token_count=60)])
    order = fixture.service.create_order("a", "user-1")
    fixture.service.after_execute(order)
    fixture.clock.advance(days=40)

    swept = run_expiry_sweep(fixture.service, ["nobody", "user-1"])

    assert swept == 1
    assert fixture.order_repo.find_by_id(order.id).status == OrderStatus.EXPIRED
    assert fixture.service.remaining_tokens("user-1").offers == []


def test_sweep_without_expired_groups() -> None:
    fixture = build_fixture([build_offer("a", token_count=60)])
    fixture.service.after_execute(fixture.service.create_order("a", "user-1"))

    assert run_expiry_sweep(fixture.service, fixture.service.list_user_ids()) == 0
