from pydantic import BaseModel
from typing import Any


class APIResponse(BaseModel):
    data: Any
    message: str
    status_code: int
