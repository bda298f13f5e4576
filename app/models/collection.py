"""
Collection model - granted to users by quizzes, never mutated by the engine
"""
from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, Uuid
from app.database import Base
from app.utils.dates import utcnow
import uuid


class Collection(Base):
    """
    Collections table - product/exercise bundles a user can be granted
    """
    __tablename__ = "collections"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    image = Column(String(1024), default="/images/sample.jpg")
    display_order = Column(Integer, default=0)
    is_public = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<Collection(id={self.id}, name={self.name})>"
