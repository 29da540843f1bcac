from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class UpdateRequest(BaseModel):
    type: Literal["full", "incremental"] = "incremental"


class UpdateResponse(BaseModel):
    status: str
    message: str


class UpdateStatusResponse(BaseModel):
    status: Literal["idle", "updating"]
    last_update: datetime | None = None
    is_updating: bool
    jira_connected: bool
    issue_count: int
    last_count: int | None = None
    last_error: str | None = None
