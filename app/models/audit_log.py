from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, func
from app.database import Base

class AuditLog(Base):
    __tablename__ = "audit_logs"
    
    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(100), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"))
    resource = Column(String(50), nullable=False, index=True)
    resource_id = Column(Integer)
    details = Column(JSON, default=dict)
    organization_id = Column(Integer, ForeignKey("organizations.id"), index=True)
    severity = Column(String(20), default="info")  # 'info', 'warning', 'error', 'critical'
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
