# backend/aihub/models/user.py

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from aihub.database import Base
from aihub.models._time import utcnow


class User(Base):
    __tablename__ = "users"
    __table_args__ = (CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    phone = Column(String(16), unique=True, index=True, nullable=False)
    name = Column(String(120), nullable=True)
    # cached projection of the ledger, only touched by aihub.services.credits.ledger
    credits = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    chats = relationship("Chat", back_populates="user", passive_deletes=True)
    transactions = relationship("CreditTransaction", back_populates="user", passive_deletes=True)
