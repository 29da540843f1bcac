"""Turn one raw Jira ticket into the canonical Issue record.

Extraction never raises: a malformed field degrades to an empty string so a
single bad ticket cannot abort a batch.
"""

import json
import re
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel

from alertboard.issues.models import Issue
from alertboard.names.resolver import NameResolver

logger = structlog.get_logger()

PRIORITY_MAP = {
    "严重": "Critical",
    "重要": "Major",
    "低": "Low",
    "Medium": "Medium",
    "High": "Major",
    "Critical": "Critical",
    "Major": "Major",
}

ALERT_KEYWORDS = ("alert", "firing", "prometheus")

JIRA_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"  # 2024-01-15T10:30:45.000+0800
STORED_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
UTC_SUFFIX = " UTC"

CLUSTER_ID_RE = re.compile(r"tidb_cluster_id\s*[=:]\s*(\S+)")
TENANT_ID_RE = re.compile(r"o11y_tenant_id\s*[=:]\s*(\S+)")
BIZ_TYPE_RE = re.compile(r"o11y_biz_type\s*[=:]\s*(\S+)")

# raw alert label key -> IssueData attribute, for fields also mirrored into labels
EXTRA_LABEL_FIELDS = (
    ("stability_governance", "stability_governance"),
    ("visibility", "visibility"),
    ("component", "component_name"),
    ("source_component", "source_component"),
    ("alertgroup", "alert_group"),
)


class IssueData(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    created: str = ""
    priority: str = ""
    labels: list[str] = []
    issue_type: str = ""
    components: list[str] = []
    project: str = ""
    is_alert: bool = False
    alert_signature: str = ""
    cluster_id: str = ""
    tenant_id: str = ""
    biz_type: str = ""
    status: str = ""
    is_subtask: bool = False
    stability_governance: str = ""
    visibility: str = ""
    component_name: str = ""
    source_component: str = ""
    alert_group: str = ""

    def to_model(self) -> Issue:
        values = self.model_dump()
        values["labels"] = json.dumps(self.labels, ensure_ascii=False)
        values["components"] = json.dumps(self.components, ensure_ascii=False)
        return Issue(**values)


def convert_priority(priority: str) -> str:
    return PRIORITY_MAP.get(priority, priority)


def convert_to_utc(jira_time: str) -> str:
    """Rewrite a Jira timestamp as ``YYYY-MM-DD HH:MM:SS UTC``; pass through if unparsable."""
    if not jira_time:
        return ""
    try:
        parsed = datetime.strptime(jira_time, JIRA_TIME_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(jira_time.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None and parsed.tzinfo is None:
            parsed = None
    if parsed is None:
        logger.warning("jira_time_unparsable", value=jira_time)
        return jira_time
    return format_stamp(parsed)


def format_stamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(STORED_TIME_FORMAT) + UTC_SUFFIX


def parse_stamp(stamp: str) -> datetime | None:
    """Inverse of ``format_stamp``; ``None`` for passed-through raw values."""
    try:
        return datetime.strptime(stamp.removesuffix(UTC_SUFFIX), STORED_TIME_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def is_alert(description: str, title: str) -> bool:
    """Approximate keyword heuristic; tickets merely mentioning an alert also match."""
    text = f"{title}\n{description}".lower()
    return any(kw in text for kw in ALERT_KEYWORDS)


def _extract_adf_text(adf: dict) -> str:
    """Recursively extract plain text from Atlassian Document Format."""
    texts: list[str] = []
    if adf.get("type") == "text":
        texts.append(adf.get("text", ""))
    for child in adf.get("content", []):
        if isinstance(child, dict):
            texts.append(_extract_adf_text(child))
    return " ".join(t for t in texts if t).strip()


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return _extract_adf_text(value)
    return str(value)


def _name(value) -> str:
    if isinstance(value, dict):
        return _text(value.get("name"))
    return ""


def parse_raw_alert_data(raw_data) -> dict[str, str]:
    """Return the ``labels`` map of the raw alert payload, or ``{}``.

    The payload arrives either as an embedded JSON object or as a string
    holding one.
    """
    data = raw_data
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError:
            return {}
    if not isinstance(data, dict):
        return {}
    labels = data.get("labels")
    if not isinstance(labels, dict):
        return {}
    return {str(k): v for k, v in labels.items() if isinstance(v, str)}


def merge_labels(existing: list[str], extra: list[str]) -> list[str]:
    """Append *extra* to *existing*, dropping duplicates and keeping first-seen order."""
    return list(dict.fromkeys([*existing, *extra]))


def _apply_raw_alert_data(data: IssueData, raw_alert_data) -> None:
    labels = parse_raw_alert_data(raw_alert_data)
    if not labels:
        return

    data.cluster_id = labels.get("tidb_cluster_id") or labels.get("cluster_id", "")
    data.tenant_id = labels.get("o11y_tenant_id", "")
    data.biz_type = labels.get("o11y_biz_type", "")

    extra = []
    for key, attr in EXTRA_LABEL_FIELDS:
        value = labels.get(key, "")
        setattr(data, attr, value)
        if value:
            extra.append(f"{key}:{value}")
    data.labels = merge_labels(data.labels, extra)


def _search(pattern: re.Pattern, text: str) -> str:
    match = pattern.search(text)
    return match.group(1).strip() if match else ""


def _apply_description_fallback(data: IssueData) -> None:
    if not data.cluster_id:
        data.cluster_id = _search(CLUSTER_ID_RE, data.description)
    if not data.tenant_id:
        data.tenant_id = _search(TENANT_ID_RE, data.description)
    if not data.biz_type:
        data.biz_type = _search(BIZ_TYPE_RE, data.description)


def extract_issue_data(raw: dict, raw_alert_field: str = "customfield_10160") -> IssueData:
    """Map a raw Jira issue resource to ``IssueData`` without any I/O."""
    key = _text(raw.get("key")) if isinstance(raw, dict) else ""
    data = IssueData(id=key)
    fields = raw.get("fields") if isinstance(raw, dict) else None
    if not isinstance(fields, dict):
        logger.warning("jira_issue_without_fields", issue_key=key)
        return data

    try:
        data.title = _text(fields.get("summary"))
        data.description = _text(fields.get("description"))
        data.created = convert_to_utc(_text(fields.get("created")))
        data.project = _text((fields.get("project") or {}).get("key"))
        data.priority = convert_priority(_name(fields.get("priority")))
        data.status = _name(fields.get("status"))

        issue_type = fields.get("issuetype")
        if isinstance(issue_type, dict) and issue_type.get("name"):
            data.issue_type = _text(issue_type.get("name"))
            data.is_subtask = bool(issue_type.get("subtask")) or bool(fields.get("parent"))

        data.labels = [str(label) for label in fields.get("labels") or []]
        data.components = [_name(c) for c in fields.get("components") or [] if _name(c)]

        data.is_alert = is_alert(data.description, data.title)
        if data.is_alert:
            data.alert_signature = data.title

        raw_alert_data = fields.get(raw_alert_field)
        if raw_alert_data is not None:
            _apply_raw_alert_data(data, raw_alert_data)

        if not (data.cluster_id and data.tenant_id and data.biz_type):
            _apply_description_fallback(data)
    except (AttributeError, TypeError, ValueError) as exc:
        logger.warning("jira_issue_extraction_degraded", issue_key=key, error=str(exc))

    return data


async def normalize_issue(
    raw: dict,
    resolver: NameResolver | None = None,
    raw_alert_field: str = "customfield_10160",
) -> IssueData:
    """``extract_issue_data`` plus best-effort tenant lookup from the cluster id."""
    data = extract_issue_data(raw, raw_alert_field)
    if resolver is not None and not data.tenant_id and data.cluster_id:
        info = await resolver.resolve_or_fallback(data.cluster_id)
        data.tenant_id = info.tenant_id
    return data
