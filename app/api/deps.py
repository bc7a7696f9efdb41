"""
Shared API dependencies.
"""

from typing import Any, Dict, Optional
from fastapi import Request

from app.services.notification_dispatcher import NotificationDispatcher


def get_dispatcher(request: Request) -> Optional[NotificationDispatcher]:
    """取得應用程式的通知派送器（未啟動時為 None）"""
    return getattr(request.app.state, "dispatcher", None)


def envelope(data: Any = None, message: str = "") -> Dict[str, Any]:
    """統一的成功回應格式"""
    return {"success": True, "data": data, "message": message}
