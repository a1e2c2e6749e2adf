import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Iterable


def setup_logger(
    name: str = "user-credits",
    level: str | None = None,
    fields: Iterable[str] = (),
) -> logging.Logger:
    """서비스 로거에 JSON 핸들러를 달아 반환한다.

    Args:
        name: 로거 이름. SERVICE_NAME 환경변수가 있으면 그 값을 쓴다.
        level: 로그 레벨. None 이면 LOG_LEVEL 환경변수, 없으면 INFO.
        fields: extra 로 넘어오면 JSON 에 그대로 실을 필드 이름들
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JsonFormatter(fields))

    logger = logging.getLogger(os.getenv("SERVICE_NAME", name))
    logger.setLevel(log_level)
    logger.handlers = [handler]

    # 모듈 로거(logging.getLogger(__name__))와 pymongo 로그는 루트 로거로 올라온다.
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.addHandler(handler)
        root_logger.setLevel(log_level)

    return logger


class JsonFormatter(logging.Formatter):
    """한 줄에 JSON 객체 하나를 찍는 포맷터.

    기본 필드는 datetime(UTC, ISO-8601), level, logger, message 이다.
    fields 에 지정한 이름은 record 에 있을 때만 추가한다.
    """

    def __init__(self, fields: Iterable[str] = ()) -> None:
        super().__init__()
        self.fields = tuple(fields)

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_record: dict[str, object] = {
            "datetime": created.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self.fields:
            if hasattr(record, key):
                log_record[key] = getattr(record, key)

        service_name = os.getenv("SERVICE_NAME")
        if service_name:
            log_record["service_name"] = service_name

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        # StrEnum 상태값이나 datetime 은 문자열로 남긴다.
        return json.dumps(log_record, ensure_ascii=False, default=str)
