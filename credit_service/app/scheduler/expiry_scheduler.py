from __future__ import annotations

import logging
import threading

from common.mongo.client import get_database

from ..config import load_config
from ..exceptions import CreditServiceError
from ..services.credit_service import CreditService, build_credit_service


logger = logging.getLogger(__name__)


_EXPIRY_SCHEDULER_THREAD: threading.Thread | None = None
_EXPIRY_SCHEDULER_STOP_EVENT: threading.Event | None = None


def run_expiry_sweep(service: CreditService, user_ids: list[str]) -> int:
    """모든 유저의 잔액 시트를 점검하고, 만료 그룹이 제거된 유저 수를 반환한다.

    한 유저의 실패는 로그만 남기고 다음 유저로 넘어간다.
    """

    swept = 0
    for user_id in user_ids:
        try:
            result = service.check_for_expired_orders(user_id)
        except CreditServiceError:
            logger.exception("expiry sweep failed", extra={"user_id": user_id})
            continue

        if result.expired:
            swept += 1
        if result.warnings:
            logger.info(
                "expiry warnings for groups %s",
                [offer.offer_group for offer in result.warnings],
                extra={"user_id": user_id},
            )
    return swept


def _run_scheduler_loop(stop_event: threading.Event, interval: float) -> None:
    logger.info("expiry scheduler thread started (interval=%.0f seconds)", interval)

    cfg = load_config().credits
    service = build_credit_service(get_database(), config=cfg)

    def _sweep(label: str) -> None:
        logger.info("expiry sweep starting (%s)", label)
        try:
            user_ids = service.list_user_ids()
            swept = run_expiry_sweep(service, user_ids)
            logger.info(
                "expiry sweep completed (%s) users=%d expired=%d",
                label,
                len(user_ids),
                swept,
            )
        except Exception:  # noqa: BLE001
            logger.exception("expiry sweep failed (%s)", label)

    try:
        # 최초 실행
        _sweep("initial run")

        # 주기적 실행
        while not stop_event.wait(interval):
            _sweep("scheduled run")
    finally:
        logger.info("expiry scheduler thread stopped")


def start_expiry_scheduler(interval: float | None = None) -> None:
    """만료 점검 스케줄러 스레드를 시작한다."""

    global _EXPIRY_SCHEDULER_THREAD, _EXPIRY_SCHEDULER_STOP_EVENT

    if _EXPIRY_SCHEDULER_THREAD and _EXPIRY_SCHEDULER_THREAD.is_alive():
        return

    if interval is None:
        interval = load_config().credits.expiry.sweep_interval_seconds

    stop_event = threading.Event()
    thread = threading.Thread(
        target=_run_scheduler_loop,
        args=(stop_event, interval),
        name="expiry-scheduler",
        daemon=True,
    )

    _EXPIRY_SCHEDULER_STOP_EVENT = stop_event
    _EXPIRY_SCHEDULER_THREAD = thread

    thread.start()
    logger.info("expiry scheduler thread launched")


def stop_expiry_scheduler() -> None:
    """만료 점검 스케줄러 스레드를 정지한다."""

    global _EXPIRY_SCHEDULER_THREAD, _EXPIRY_SCHEDULER_STOP_EVENT

    if _EXPIRY_SCHEDULER_THREAD is None or _EXPIRY_SCHEDULER_STOP_EVENT is None:
        return

    _EXPIRY_SCHEDULER_STOP_EVENT.set()
    _EXPIRY_SCHEDULER_THREAD.join(timeout=10.0)

    _EXPIRY_SCHEDULER_THREAD = None
    _EXPIRY_SCHEDULER_STOP_EVENT = None

    logger.info("expiry scheduler thread stopped by shutdown")
