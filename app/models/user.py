from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, func, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base

NOTIFICATION_CATEGORIES = ["system", "attendance", "leave", "tasks", "orders", "inventory", "customers", "security"]


def default_notification_settings() -> dict:
    """新用戶的預設通知偏好"""
    return {
        "email": {
            "enabled": True,
            "categories": {category: True for category in NOTIFICATION_CATEGORIES}
        },
        "in_app": {
            "enabled": True,
            "categories": {category: True for category in NOTIFICATION_CATEGORIES}
        }
    }


class Organization(Base):
    __tablename__ = "organizations"
    
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class User(Base):
    __tablename__ = "users"
    
    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    email = Column(String(120), unique=True, nullable=False, index=True)
    full_name = Column(String(100), nullable=False)
    department = Column(String(50))
    role = Column(String(20), default="employee")  # 'employee', 'manager', 'admin', 'super-admin'
    is_active = Column(Boolean, default=True)
    notification_settings = Column(JSON, default=default_notification_settings)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    organization = relationship("Organization", backref="users")

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "super-admin")
