# queuedesk/app/models.py
from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.sql import func
from .db import Base


# key/value holder for the queue, the serviced history and the ticket counter
class StoreItem(Base):
    __tablename__ = "store_items"
    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)  # JSON
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# staff and front-door actions
class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True)
    entity = Column(String)
    entity_id = Column(String)
    action = Column(String)
    user = Column(String)
    details = Column(Text)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
