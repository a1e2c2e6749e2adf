from __future__ import annotations

import os


MONGO_URI_ENV = "MONGO_URI"
MONGO_DB_NAME_ENV = "MONGO_DB_NAME"


def get_mongo_uri() -> str:
    """MongoDB 연결 URI. 설정되지 않았으면 즉시 실패한다."""

    value = os.getenv(MONGO_URI_ENV, "").strip()
    if not value:
        raise RuntimeError(
            f"{MONGO_URI_ENV} environment variable is required for MongoDB",
        )
    return value


def get_mongo_db_name() -> str | None:
    """MONGO_DB_NAME 이 비어 있으면 None. 이 경우 URI 의 기본 DB 를 사용한다."""

    value = os.getenv(MONGO_DB_NAME_ENV, "").strip()
    return value or None
