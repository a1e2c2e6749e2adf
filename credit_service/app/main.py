from __future__ import annotations

import logging
import signal
import threading

from common.logger import setup_logger
from common.mongo.client import close_client, get_database

from .config import load_config
from .scheduler.expiry_scheduler import start_expiry_scheduler, stop_expiry_scheduler


logger = logging.getLogger(__name__)

# 크레딧 로그에 extra 로 붙는 식별자
LOG_FIELDS = ("user_id", "order_id", "offer_id", "offer_group", "tokens", "status")


def main() -> None:
    setup_logger(name="credit-service", fields=LOG_FIELDS)
    logger.info("credit-service starting up")

    cfg = load_config().credits
    # 연결/인덱스 생성 실패는 시작 시점에 드러나도록 먼저 연결한다.
    get_database()

    stop_event = threading.Event()

    def _signal_handler(signum, frame) -> None:  # type: ignore[unused-argument]
        logger.info("received signal %s, shutting down credit-service...", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    start_expiry_scheduler(cfg.expiry.sweep_interval_seconds)
    try:
        stop_event.wait()
    finally:
        stop_expiry_scheduler()
        close_client()
        logger.info("credit-service stopped")


if __name__ == "__main__":  # pragma: no cover
    main()
