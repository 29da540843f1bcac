import json
from datetime import datetime

from pydantic import BaseModel, field_validator


class IssueResponse(BaseModel):
    id: str
    title: str
    description: str
    created: str
    priority: str
    labels: list[str]
    issue_type: str
    components: list[str]
    project: str
    is_alert: bool
    alert_signature: str
    cluster_id: str
    cluster_name: str = ""
    tenant_id: str
    biz_type: str
    status: str
    is_subtask: bool
    stability_governance: str
    visibility: str
    component_name: str
    source_component: str
    alert_group: str

    model_config = {"from_attributes": True}

    @field_validator("labels", "components", mode="before")
    @classmethod
    def _decode_json_array(cls, value):
        if isinstance(value, str):
            try:
                value = json.loads(value) if value else []
            except ValueError:
                return []
        return value if isinstance(value, list) else []


class MuteRequest(BaseModel):
    reason: str = "User muted via dashboard"


class MuteResponse(BaseModel):
    issue_id: str
    muted_at: datetime
    reason: str

    model_config = {"from_attributes": True}


class UnmuteResponse(BaseModel):
    status: str
    message: str
