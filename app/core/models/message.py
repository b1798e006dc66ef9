from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from app.db.session import Base


class Message(Base):
    """
    Every communication in the system.

    Student-facing messages use staff_id and student_id for the two ends of the
    conversation; broadcasts are stored as one row per recipient student. Staff <->
    admin messages use sender_id / recipient_id with is_staff_message set.
    message_type tells the families apart.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_reply_to", "reply_to_message_id"),
        Index("ix_messages_type_student_type", "message_type", "student_message_type"),
        Index("ix_messages_staff_type", "staff_id", "message_type"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    content = Column(Text, nullable=False)
    file_path = Column(String(500), nullable=True)
    file_name = Column(String(255), nullable=True)
    is_announcement = Column(Boolean, nullable=False, default=False)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    staff_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    is_staff_message = Column(Boolean, nullable=False, default=False)
    message_type = Column(String(30), nullable=False, default="INDIVIDUAL")
    # question | doubt | clarification | general
    student_message_type = Column(String(20), nullable=True, default="general")
    reply_to_message_id = Column(Integer, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True)
    # STUDENT | PARENT, only for EMAIL messages
    email_type = Column(String(20), nullable=True)
    # JSON list of addresses actually emailed
    email_recipients = Column(Text, nullable=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
