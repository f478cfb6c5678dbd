"""
Exception hierarchy for the client.

TransportError          connection or timeout failures from redis
DecodeError             a reply that cannot be decoded into the expected shape
ScriptUnavailableError  the script stayed uncached after a reload and retry
ScriptError             the script raised; carries the runtime message verbatim
  LeaseLostError        the caller no longer holds the job's lease
  NotFoundError         the job or recurring job does not exist
UnsupportedConfigTypeError  a config value of an unexpected reply type
"""

from typing import Any


class QlessError(Exception):
    """Base class for all client errors."""


class TransportError(QlessError):
    """The connection to redis failed or timed out."""


class DecodeError(QlessError):
    """A reply could not be decoded."""

    def __init__(self, opcode: str, raw: Any, reason: str = ""):
        self.opcode = opcode
        self.raw = raw
        self.reason = reason
        message = f"cannot decode reply to {opcode!r}: {raw!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ScriptUnavailableError(QlessError):
    """The script hash was still unknown after reloading the script body."""

    def __init__(self, script: str, sha: str):
        self.script = script
        self.sha = sha
        super().__init__(f"script {script!r} ({sha}) unavailable after reload")


class ScriptError(QlessError):
    """The script runtime rejected the invocation."""

    def __init__(self, opcode: str, message: str):
        self.opcode = opcode
        self.message = message
        super().__init__(message)


class LeaseLostError(ScriptError):
    """The job is no longer leased to this worker."""


class NotFoundError(ScriptError):
    """No job or recurring job exists with the requested identifier."""


class UnsupportedConfigTypeError(QlessError):
    """A config value came back as neither a byte string nor an integer."""

    def __init__(self, option: str, value: Any):
        self.option = option
        self.value = value
        super().__init__(
            f"config option {option!r} has unsupported reply type {type(value).__name__}"
        )
