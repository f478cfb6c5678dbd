"""
Wire codec for the script entry point.

Every invocation is laid out as

    qualifier, opcode, now, *args

where the qualifier is the fixed EVALSHA key count and `now` is supplied
by the client clock. Replies are raw bytes, integers or JSON documents
depending on the opcode.
"""

import json
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError, ValidationInfo

from qless_client.constants import EMPTY_PAYLOAD, INVOCATION_QUALIFIER
from qless_client.exceptions import (
    DecodeError,
    NotFoundError,
    UnsupportedConfigTypeError,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FALSE_STRINGS = ("", "0", "false")


def encode_invocation(opcode: str, now: int, *args: Any) -> tuple[Any, ...]:
    """
    Lay out the positional arguments of one invocation.

    Args:
        opcode: Operation name dispatched by the script.
        now: Timestamp in whole seconds since the epoch.
        *args: Operation-specific positional arguments.

    Returns:
        The arguments to pass after the script hash.

    Raises:
        ValueError: If any argument is None.
    """
    for position, arg in enumerate(args):
        if arg is None:
            raise ValueError(f"argument {position} of {opcode!r} is None")
    return (INVOCATION_QUALIFIER, str(opcode), int(now), *args)


def encode_data(value: Any) -> str:
    """JSON-encode a job payload; an absent payload encodes as an empty object."""
    if value is None:
        return EMPTY_PAYLOAD
    return json.dumps(value, separators=(",", ":"))


def decode_data(value: Any) -> Any:
    """
    Decode a job payload as stored by the runtime.

    The runtime keeps payloads as JSON text inside the job document, so a
    string is decoded once more. Absent or empty payloads become {}.
    """
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if value is None or value == "":
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return value


def validate_data(value: Any, info: ValidationInfo) -> Any:
    """
    Validate a payload field.

    Documents decoded from a reply carry the payload as JSON text and are
    decoded with decode_data(). Values given when building a model locally
    are kept as they are, apart from None which becomes {}.
    """
    if info.mode == "json":
        return decode_data(value)
    return {} if value is None else value


def _require(reply: Any, opcode: str) -> Any:
    if reply is None:
        raise NotFoundError(opcode, f"{opcode}: no such record")
    return reply


def decode_bytes(reply: Any, opcode: str) -> bytes:
    """Decode a reply as raw bytes."""
    reply = _require(reply, opcode)
    if isinstance(reply, bytes):
        return reply
    if isinstance(reply, str):
        return reply.encode("utf-8")
    if isinstance(reply, int):
        return str(reply).encode("ascii")
    raise DecodeError(opcode, reply, "expected a byte string")


def decode_string(reply: Any, opcode: str) -> str:
    """Decode a reply as UTF-8 text."""
    raw = decode_bytes(reply, opcode)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(opcode, raw, str(e)) from e


def decode_int(reply: Any, opcode: str) -> int:
    """Decode an integer reply; numeric byte strings are accepted."""
    reply = _require(reply, opcode)
    if isinstance(reply, int) and not isinstance(reply, bool):
        return reply
    if isinstance(reply, (bytes, str)):
        try:
            return int(reply)
        except ValueError as e:
            raise DecodeError(opcode, reply, "expected an integer") from e
    raise DecodeError(opcode, reply, "expected an integer")


def decode_bool(reply: Any, opcode: str) -> bool:
    """
    Decode a truthiness reply.

    Lua false arrives as nil, true as 1; some opcodes answer with a jid or
    a timestamp, which count as success.
    """
    if reply is None:
        return False
    if isinstance(reply, int):
        return reply != 0
    if isinstance(reply, (bytes, str)):
        text = reply.decode("utf-8") if isinstance(reply, bytes) else reply
        return text.lower() not in _FALSE_STRINGS
    raise DecodeError(opcode, reply, "expected a boolean")


def decode_json(
    reply: Any,
    opcode: str,
    target: type[ModelT] | TypeAdapter,
) -> Any:
    """
    Decode a JSON reply into a pydantic model or TypeAdapter target.

    Args:
        reply: Raw reply.
        opcode: Opcode the reply answers, for diagnostics.
        target: A BaseModel subclass or a TypeAdapter.

    Returns:
        The validated value.

    Raises:
        NotFoundError: If the reply is nil.
        DecodeError: If the reply is not valid JSON for the target.
    """
    raw = decode_bytes(reply, opcode)
    try:
        if isinstance(target, TypeAdapter):
            return target.validate_json(raw)
        return target.model_validate_json(raw)
    except (ValidationError, ValueError) as e:
        raise DecodeError(opcode, raw, str(e)) from e


def decode_json_value(reply: Any, opcode: str) -> Any:
    """Decode a JSON reply into plain Python values."""
    raw = decode_bytes(reply, opcode)
    try:
        return json.loads(raw)
    except ValueError as e:
        raise DecodeError(opcode, raw, str(e)) from e


def decode_config_value(reply: Any, option: str) -> str:
    """
    Decode a config.get reply.

    The runtime answers with a byte string or an integer depending on how
    the value was stored; both are returned as text.

    Raises:
        UnsupportedConfigTypeError: For any other reply shape.
    """
    if isinstance(reply, bytes):
        return reply.decode("utf-8")
    if isinstance(reply, str):
        return reply
    if isinstance(reply, int) and not isinstance(reply, bool):
        return str(reply)
    raise UnsupportedConfigTypeError(option, reply)
