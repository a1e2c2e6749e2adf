from __future__ import annotations

from typing import Annotated, Any

from pydantic.functional_validators import BeforeValidator


def _to_id_str(value: Any) -> Any:
    """ObjectId 등 문자열이 아닌 식별자를 문자열 ID 로 바꾼다. None 은 그대로 둔다."""

    if value is None or isinstance(value, str):
        return value
    return str(value)


def ids_equal(a: Any, b: Any) -> bool:
    """ObjectId 와 문자열이 섞여 있어도 같은 ID 인지 비교한다."""

    if a is None or b is None:
        return False
    return str(a) == str(b)


ObjectIdStr = Annotated[str, BeforeValidator(_to_id_str)]
