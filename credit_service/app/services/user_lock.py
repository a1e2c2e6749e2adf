from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator


@dataclass(slots=True)
class _UserLock:
    lock: threading.RLock = field(default_factory=threading.RLock)
    # 락을 잡고 있거나 기다리는 호출 수
    refs: int = 0


class UserLockRegistry:
    """유저 ID 별 프로세스 내 락.

    UserCredits 는 find -> 메모리 변경 -> save 로 갱신되므로 같은 유저의 생애주기 작업은
    한 번에 하나만 실행되어야 한다. 서로 다른 유저는 병렬로 처리된다.
    잡고 있거나 기다리는 호출이 없어지면 항목을 지운다.
    여러 프로세스에 걸친 배타 제어는 저장소(트랜잭션 등)가 맡는다.
    """

    def __init__(self) -> None:
        self._locks: dict[str, _UserLock] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _acquire_ref(self, user_id: str) -> _UserLock:
        with self._guard:
            entry = self._locks.get(user_id)
            if entry is None:
                entry = _UserLock()
                self._locks[user_id] = entry
            entry.refs += 1
            return entry

    def _release_ref(self, user_id: str, entry: _UserLock) -> None:
        with self._guard:
            entry.refs -= 1
            if entry.refs == 0:
                self._locks.pop(user_id, None)

    @contextmanager
    def lock(self, user_id: str) -> Iterator[None]:
        key = str(user_id)
        entry = self._acquire_ref(key)
        try:
            with entry.lock:
                yield
        finally:
            self._release_ref(key, entry)
