"""
Domain exceptions raised by the service layer and rendered by the API.
"""


class AppError(Exception):
    """業務錯誤基底類別"""

    status_code: int = 500
    error: str = "Internal error"

    def __init__(self, message: str, error: str = None):
        self.message = message
        if error:
            self.error = error
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.error, "message": self.message}


class ValidationError(AppError):
    """輸入資料缺漏或格式錯誤"""
    status_code = 400
    error = "Validation error"


class InvalidStateError(AppError):
    """目前流程狀態不允許此操作"""
    status_code = 400
    error = "Invalid state"


class NotFoundError(AppError):
    """找不到資源"""
    status_code = 404
    error = "Not found"


class ConflictError(AppError):
    """資源重複或衝突"""
    status_code = 409
    error = "Conflict"


class InternalError(AppError):
    """非預期的持久層或傳輸錯誤"""
    status_code = 500
    error = "Internal error"
