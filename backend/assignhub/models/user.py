from sqlalchemy import Column, DateTime, Integer, String, func

from assignhub.core.timeutils import utcnow
from assignhub.database.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(180), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, default="user", index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
