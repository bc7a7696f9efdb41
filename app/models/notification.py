from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, func
from sqlalchemy.orm import relationship
from app.database import Base

class NotificationTemplate(Base):
    __tablename__ = "notification_templates"
    
    id = Column(Integer, primary_key=True, index=True)
    template_name = Column(String(100), unique=True, nullable=False, index=True)
    subject = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    channel = Column(String(20), nullable=False, default="system")  # 'email', 'system'
    trigger_event = Column(String(50), nullable=False, default="custom", index=True)
    category = Column(String(30), nullable=False, default="system")
    is_active = Column(Boolean, default=True)
    is_default = Column(Boolean, default=False)
    version = Column(Integer, default=1)
    last_used_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class Notification(Base):
    __tablename__ = "notifications"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), index=True)
    template_id = Column(Integer, ForeignKey("notification_templates.id"))
    channel = Column(String(20), nullable=False, default="system")
    category = Column(String(30), nullable=False, default="system")
    subject = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)  # 'pending', 'sent', 'failed'
    delivery_attempt_count = Column(Integer, nullable=False, default=0)
    sent_at = Column(DateTime(timezone=True))
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    user = relationship("User", backref="notifications")
    template = relationship("NotificationTemplate")
