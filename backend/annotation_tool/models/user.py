from pydantic import BaseModel


class User(BaseModel):
    id: str | int
    nickname: str | None = None
