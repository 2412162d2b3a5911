from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, false, func, true
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from medstudy.db.base_class import Base
from medstudy.models.enums import TopicType, enum_values


class Topic(Base):
    """A study unit extracted from an uploaded document."""

    __tablename__ = "topics"
    __table_args__ = (CheckConstraint("confidence >= 0 AND confidence <= 100", name="ck_topics_confidence_range"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), index=True, nullable=False)
    subject_id: Mapped[int | None] = mapped_column(ForeignKey("subjects.id", ondelete="SET NULL"), nullable=True, index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    topic_type: Mapped[TopicType] = mapped_column(
        SAEnum(TopicType, name="topic_type", values_callable=enum_values, native_enum=False),
        nullable=False,
        default=TopicType.CONCEPT,
    )
    confidence: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    # Review flags (only the review/confirm step changes these)
    included: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    deep_focus: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    corrected_by_user: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    extracted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
