"""
Error taxonomy for the runner bridge.

Every failure a request can end in is one of these exceptions. Each one
knows the HTTP status it maps to and how to render itself as the JSON
body sent back to the caller.
"""

from typing import Any, Dict, Optional


class BridgeError(Exception):
    """Base exception for bridge errors."""

    status = 500

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class BadRequest(BridgeError):
    """Raised when the inbound request cannot be read or understood."""
    status = 400


class NoInterpreterFound(BridgeError):
    """Raised when none of the interpreter candidates answers the probe."""

    def __init__(self, candidates):
        self.candidates = list(candidates)
        tried = ", ".join(self.candidates) or "no candidates"
        super().__init__(f"No Python interpreter found (tried {tried})")


class RunnerMissing(BridgeError):
    """Raised when the target script does not exist. No spawn is attempted."""


class SpawnFailed(BridgeError):
    """Raised when the child process cannot be created."""

    def __init__(self, reason: str = ""):
        self.reason = reason
        super().__init__("Failed to start runner")


class RunnerTimeout(BridgeError):
    """Raised when the child outlives the wall-clock timeout and is killed."""
    status = 504

    def __init__(self, timeout: float, stderr: str = "", stdout: str = ""):
        self.timeout = timeout
        self.stderr = stderr
        self.stdout = stdout
        super().__init__("runner timeout")

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "stderr": self.stderr}


class OutputTooLarge(BridgeError):
    """Raised when the child writes more than the configured capture limit."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__("runner output too large")

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "limit": self.limit}


class RunnerExitedNonZero(BridgeError):
    """Raised when the child fails and leaves nothing on standard output."""

    def __init__(self, code: int, stderr: str = ""):
        self.code = code
        self.stderr = stderr
        super().__init__("runner exited with error")

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "stderr": self.stderr}


class InvalidJSONOutput(BridgeError):
    """Raised when standard output of the child is not a JSON document."""
    status = 200

    def __init__(self, raw: str, stderr: str = ""):
        self.raw = raw
        self.stderr = stderr
        super().__init__("invalid JSON from runner")

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "raw": self.raw, "stderr": self.stderr}
