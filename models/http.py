import json
from typing import Any

from pydantic import BaseModel, Field


class HttpResponseDTO(BaseModel):
    """
    Transport-neutral HTTP response.

    Carried between the cache worker and its callers as a plain value, never
    as a live connection object.
    """
    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    url: str = ""
    from_cache: bool = False
    offline: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.body) if self.body else None
