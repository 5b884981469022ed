from typing import Any

from pydantic import BaseModel


class ErrorOut(BaseModel):
    # plain message, or the catalog's own error payload when there is one
    error: Any


class HealthOut(BaseModel):
    status: str
    service: str
