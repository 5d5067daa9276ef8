from typing import Any, Dict


class AppException(Exception):
    """Base application exception.

    Carries a stable machine-readable ``code`` and the HTTP status the API
    boundary should answer with.
    """

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}
