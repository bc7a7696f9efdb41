from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Text, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import relationship
from app.database import Base

class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    
    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    check_in_at = Column(DateTime(timezone=True))
    check_out_at = Column(DateTime(timezone=True))
    break_start_at = Column(DateTime(timezone=True))
    break_end_at = Column(DateTime(timezone=True))
    break_duration = Column(Integer, nullable=False, default=0)  # 分鐘
    work_hours = Column(Float, nullable=False, default=0)
    overtime = Column(Float, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="present")  # 'present', 'late', 'remote', 'on-break', 'half-day'
    work_location = Column(String(20), nullable=False, default="office")  # 'office', 'remote'
    location = Column(String(200), default="")
    latitude = Column(Float)
    longitude = Column(Float)
    notes = Column(Text, default="")
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    employee = relationship("User", backref="attendance_records")
    
    __table_args__ = (
        UniqueConstraint('employee_id', 'date', name='uix_attendance_employee_date'),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def on_break(self) -> bool:
        return self.break_start_at is not None and self.break_end_at is None
