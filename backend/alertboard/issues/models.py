from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from alertboard.models.base import Base, TimestampMixin


class Issue(TimestampMixin, Base):
    __tablename__ = "issues"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # tracker issue key
    title: Mapped[str] = mapped_column(Text, default="")
    description: Mapped[str] = mapped_column(Text, default="")
    created: Mapped[str] = mapped_column(String(40), default="", index=True)  # "2025-01-15 10:30:45 UTC"
    priority: Mapped[str] = mapped_column(String(50), default="")
    labels: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    issue_type: Mapped[str] = mapped_column(String(100), default="")
    components: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    project: Mapped[str] = mapped_column(String(50), default="")

    is_alert: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    alert_signature: Mapped[str] = mapped_column(Text, default="")

    cluster_id: Mapped[str] = mapped_column(String(100), default="", index=True)
    tenant_id: Mapped[str] = mapped_column(String(100), default="", index=True)
    biz_type: Mapped[str] = mapped_column(String(100), default="")
    status: Mapped[str] = mapped_column(String(100), default="")
    is_subtask: Mapped[bool] = mapped_column(Boolean, default=False)

    stability_governance: Mapped[str] = mapped_column(String(100), default="")
    visibility: Mapped[str] = mapped_column(String(50), default="")  # internal, external or empty
    component_name: Mapped[str] = mapped_column(String(255), default="")
    source_component: Mapped[str] = mapped_column(String(255), default="")
    alert_group: Mapped[str] = mapped_column(String(255), default="")


class MutedIssue(Base):
    __tablename__ = "muted_issues"

    issue_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    muted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    reason: Mapped[str] = mapped_column(Text, default="")
