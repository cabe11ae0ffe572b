from typing import Any

from pydantic import BaseModel, ConfigDict


class Annotation(BaseModel):
    # Records come from the backend or local storage as-is, keep unknown fields
    model_config = ConfigDict(extra="allow")

    id: str | int | None = None
    text: str | None = None
    start: float = 0.0
    duration: float = 0.0
    track_id: str | int | None = None
    created_by: str | int | None = None
    created_at: int | float | None = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
