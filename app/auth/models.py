from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from app.db.session import Base


class User(Base):
    """Any account in the system: SUPER_ADMIN, STAFF or STUDENT."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    # Stored lower-cased; login compares on the lower-cased input
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    role = Column(String(20), nullable=False, default="STUDENT")
    roll_number = Column(String(50), nullable=True, unique=True)
    parent_email = Column(String(255), nullable=True)
    class_id = Column(
        Integer,
        ForeignKey("classes.id", ondelete="SET NULL", use_alter=True, name="fk_users_class_id"),
        nullable=True,
    )
    department_id = Column(
        Integer,
        ForeignKey("departments.id", ondelete="SET NULL", use_alter=True, name="fk_users_department_id"),
        nullable=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    login_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class LoginLog(Base):
    """One row per login attempt. user_id is null when the email matched no active user."""

    __tablename__ = "login_logs"
    __table_args__ = (
        Index("ix_login_logs_user_id", "user_id"),
        Index("ix_login_logs_login_time", "login_time"),
        Index("ix_login_logs_success", "success"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    login_time = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    ip_address = Column(String(255), nullable=True)
    user_agent = Column(Text, nullable=True)
    success = Column(Boolean, nullable=False, default=True)
    failure_reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
