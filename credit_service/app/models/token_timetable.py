"""토큰 원장(TokenTimetable) 도메인 모델.

추가만 가능한 원장이다. 양수는 결제로 지급된 토큰, 음수는 소비를 뜻한다.
주문 유효 기간 동안 실제로 소비된 토큰 수를 재구성하는 데 사용한다.
"""

from __future__ import annotations

from pydantic import BaseModel

from common.types.datetime import UtcDateTime
from common.types.objectid import ObjectIdStr


class TokenTimetable(BaseModel):
    id: ObjectIdStr | None = None
    user_id: ObjectIdStr
    offer_group: str
    tokens: int
    order_id: ObjectIdStr | None = None  # 지급 라인이면 근거가 된 주문
    created_at: UtcDateTime
