from typing import Optional


class AgentError(Exception):
    """Base exception for this project."""


class ProviderError(AgentError):
    """Raised when a backend returns a malformed or incomplete response."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ServicesExhaustedError(AgentError):
    """Raised when every backend service stayed rate-limited for the whole retry budget."""

    def __init__(self, last_error: Optional[BaseException], attempts: int):
        detail = str(last_error) if last_error is not None else "Unknown error"
        super().__init__(f"All services exhausted after {attempts} attempts. Last error: {detail}")
        self.last_error = last_error
        self.attempts = attempts
