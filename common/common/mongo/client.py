from __future__ import annotations

import logging
import threading
from typing import Optional, cast

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from .config import get_mongo_db_name, get_mongo_uri


logger = logging.getLogger(__name__)


_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def get_client() -> MongoClient:
    """전역 MongoClient 싱글톤을 반환한다.

    - MONGO_URI 에서 URI 를 읽어온다.
    - ping 으로 연결을 검증한다.
    - URI 에 기본 데이터베이스가 포함되어 있지 않으면 에러를 발생시킨다.
    - 크레딧 컬렉션들에 필요한 인덱스를 한 번만 생성한다.
    """

    global _client, _db

    if _client is not None:
        return _client

    with _lock:
        if _client is not None:
            return _client

        uri = get_mongo_uri()
        client = MongoClient(uri, tz_aware=True)

        try:
            client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        # 사용할 DB 이름 결정: MONGO_DB_NAME 우선, 없으면 URI의 기본 DB 사용
        db_name = get_mongo_db_name()
        try:
            if db_name:
                db = client[db_name]
            else:
                db = client.get_default_database()
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        _client = client
        _db = db

        try:
            _ensure_indexes(_db)
        except Exception as exc:  # noqa: BLE001
            # 인덱스 생성 실패는 치명적 오류로 간주한다.
            logger.error("failed to ensure MongoDB indexes: %s", exc)
            raise

        safe_db = cast(Database, _db)
        logger.info("MongoDB connected and indexes ensured (db=%s)", safe_db.name)
        return _client


def get_database() -> Database:
    """전역 기본 Database 객체를 반환한다."""

    global _db

    if _db is None:
        get_client()
    assert (
        _db is not None
    )  # get_client 에서 _db 를 초기화하지 못했다면 예외가 이미 발생했어야 한다.
    return _db


def close_client() -> None:
    """전역 MongoClient 를 닫는다. 프로세스 종료 시 호출한다."""

    global _client, _db

    with _lock:
        if _client is not None:
            _client.close()
        _client = None
        _db = None


def _ensure_indexes(db: Database) -> None:
    """필수 인덱스를 생성한다.

    중복 생성해도 MongoDB 가 처리하므로 idempotent 하다.
    token_timetable 인덱스는 TokenTimetableRepository 가 직접 관리한다.
    """

    offers = db["offers"]

    # 조건 없는 오퍼(unlocked_by=[]) 와 잠금 해제 오퍼 조회
    offers.create_index([("unlocked_by", ASCENDING)], name="idx_unlocked_by")

    # 환경 태그 필터
    offers.create_index([("tags", ASCENDING)], name="idx_tags")

    orders = db["orders"]

    # appendDate 계산 및 만료 스윕: (user_id, offer_group, status, expires)
    orders.create_index(
        [
            ("user_id", ASCENDING),
            ("offer_group", ASCENDING),
            ("status", ASCENDING),
            ("expires", DESCENDING),
        ],
        name="idx_user_group_status_expires",
    )

    orders.create_index(
        [("user_id", ASCENDING), ("offer_id", ASCENDING), ("status", ASCENDING)],
        name="idx_user_offer_status",
    )

    orders.create_index([("parent_id", ASCENDING)], name="idx_parent_id", sparse=True)

    user_credits = db["user_credits"]

    # 유저당 하나의 UserCredits 도큐먼트만 존재한다.
    user_credits.create_index(
        [("user_id", ASCENDING)],
        name="uniq_user_id",
        unique=True,
    )
