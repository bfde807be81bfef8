import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from database import Base


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    applications = relationship("Application", back_populates="owner")


class Application(Base):
    __tablename__ = "applications"

    id = Column(String(32), primary_key=True, default=new_id)
    # Ownership is enforced by filtering on owner_id, never by the FK alone
    owner_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
    company = Column(String, nullable=False, default="unknown")
    role = Column(String, nullable=False, default="")
    status = Column(String, nullable=False, default="applied")
    submitted_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    url = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    owner = relationship("User", back_populates="applications")


class Question(Base):
    __tablename__ = "questions"

    id = Column(String(32), primary_key=True, default=new_id)
    company = Column(String, index=True, nullable=False)
    role = Column(String, nullable=True)
    question_title = Column(String, nullable=False)
    question_detail = Column(Text, nullable=False, default="")
    difficulty = Column(String, nullable=True)
    tips = Column(Text, nullable=True)
    # Denormalised author copies; author_id is not a FK so seeded rows may carry
    # an id that resolves to no user.
    author_id = Column(String(32), index=True, nullable=True)
    author_email = Column(String, index=True, nullable=False)
    author_username = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
