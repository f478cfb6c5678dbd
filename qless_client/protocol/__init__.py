"""
Protocol module.
Contains the wire codec and the script cache dispatcher.
"""

from qless_client.protocol.codec import (
    decode_bool,
    decode_bytes,
    decode_config_value,
    decode_int,
    decode_json,
    decode_string,
    encode_data,
    encode_invocation,
)
from qless_client.protocol.dispatcher import (
    ScriptDispatcher,
    classify_script_error,
    load_scripts,
    script_sha,
)

__all__ = [
    "ScriptDispatcher",
    "load_scripts",
    "script_sha",
    "classify_script_error",
    "encode_invocation",
    "encode_data",
    "decode_bytes",
    "decode_string",
    "decode_int",
    "decode_bool",
    "decode_json",
    "decode_config_value",
]
