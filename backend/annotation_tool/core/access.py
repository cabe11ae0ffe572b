from enum import IntEnum
from typing import Any


class Access(IntEnum):
    PRIVATE = 0
    PUBLIC = 1
    SHARED_WITH_ADMIN = 2
    SHARED_WITH_USER = 3

    @classmethod
    def contains(cls, value: Any) -> bool:
        # True == 1 in python, but a bool is never a level
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        return value in cls._value2member_map_

    @classmethod
    def is_public(cls, value: Any) -> bool:
        return cls.contains(value) and value == cls.PUBLIC
