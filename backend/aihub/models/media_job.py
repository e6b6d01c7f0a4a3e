# backend/aihub/models/media_job.py

import enum
import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from aihub.database import Base
from aihub.models._time import utcnow


class MediaKind(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    VOICE = "voice"
    MUSIC = "music"


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MediaJob(Base):
    __tablename__ = "media_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    kind = Column(String(16), index=True, nullable=False)
    prompt = Column(Text, nullable=False)
    model = Column(String(64), nullable=False)
    options = Column(JSON, nullable=True)
    status = Column(String(16), index=True, nullable=False, default=JobStatus.PENDING.value)
    result_url = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    credits = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
