from __future__ import annotations

from typing import Protocol

from ..models.order import Order


class PaymentClientInterface(Protocol):
    """결제 게이트웨이 어댑터가 따라야 할 계약.

    실제 게이트웨이 연동(결제 승인, 환불 등)은 이 패키지 밖에서 구현한다.
    """

    def create_payment_intent(self, order: Order) -> Order | None:  # pragma: no cover - Protocol
        """결제 의도를 만들고 payment_intent_id / payment_intent_secret 이 채워진 주문을 반환한다.

        만들지 못하면 None.
        """
        ...

    def after_payment_executed(self, order: Order) -> Order:  # pragma: no cover - Protocol
        """결제 결과를 확인해 status(paid/refused)와 history 를 갱신한 주문을 반환한다."""
        ...
