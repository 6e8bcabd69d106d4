from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Index
from sqlalchemy.sql import func

from ..db.database import Base


class CommandQueueEntry(Base):
    """
    Actuation command waiting for the external executor.

    status: 'pending' -> 'processing' -> 'done', or 'pending'/'processing' -> 'failed'
    """
    __tablename__ = "command_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Target
    device = Column(String, nullable=False, index=True)
    model = Column(String, nullable=True)
    brand = Column(String, nullable=False)

    # {"name": "turn", "value": "on"} or {"name": "brightness", "value": 40}
    command = Column(JSON, nullable=False)

    # Queue management
    status = Column(String, default='pending', nullable=False, index=True)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)  # Set when the executor picks it up

    __table_args__ = (
        Index('idx_device_status', 'device', 'status'),
    )

    def __repr__(self):
        return f"<CommandQueueEntry(id={self.id}, device='{self.device}', status='{self.status}')>"
