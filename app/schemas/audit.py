from typing import Any, Dict, Optional
from datetime import datetime

from .common import CamelModel

class AuditLogResponse(CamelModel):
    id: int
    action: str
    user_id: Optional[int] = None
    resource: str
    resource_id: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    organization_id: Optional[int] = None
    severity: str
    created_at: Optional[datetime] = None
