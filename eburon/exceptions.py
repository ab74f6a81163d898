from typing import Any, Dict, List, Optional


class ToolError(Exception):
    """Raised when a tool encounters an error."""

    def __init__(self, message):
        self.message = message


class EburonError(Exception):
    """Base exception for all console errors surfaced to a caller"""

    code: str = "internal-error"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            **self.details,
        }


class ValidationError(EburonError):
    """Missing or malformed request fields"""

    code = "missing-required-field"
    status_code = 400


class ConfigurationError(EburonError):
    """Required credentials or backend settings are absent"""

    code = "missing-credentials"
    status_code = 400

    def __init__(self, message: str, missing: Optional[List[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.missing = list(missing or [])
        if self.missing:
            self.details.setdefault("missing", self.missing)


class ProviderError(EburonError):
    """The remote browser provider failed"""

    code = "provider-error"
    status_code = 500


class ProvisionError(ProviderError):
    """The provider created a browser that cannot be shown or driven"""


class SessionNotFound(ProviderError):
    """The provider has no session with this id"""

    status_code = 404

    def __init__(self, session_id: str):
        super().__init__(f"Browser session {session_id} not found")
        self.session_id = session_id


class CreateInProgress(ProviderError):
    """Another browser creation is in flight and nothing can be reused yet"""

    status_code = 429

    def __init__(self):
        super().__init__("Browser creation already in progress")


class OrchestratorFault(EburonError):
    """Unexpected failure inside the agent loop"""

    code = "internal-error"
    status_code = 500
