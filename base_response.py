from typing import Any, Optional


class BaseResponse:
    def __init__(self, status_code: int, data: Any = None, error: str = "", code: Optional[str] = None):
        self.status_code = status_code
        self.data = data
        self.error = error
        self.code = code

    @classmethod
    def from_error(cls, err, expose: bool = True) -> "BaseResponse":
        message = err.message if expose else "Internal server error"
        return cls(status_code=err.status_code, data=None, error=message, code=err.code)

    def to_dict(self):
        body = {
            "status_code": self.status_code,
            "data": self.data,
            "error": self.error,
        }
        if self.code:
            body["code"] = self.code
        return body
