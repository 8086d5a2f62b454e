"""
Payload codecs used by the value-level handler adapters.

A codec turns the opaque invocation payload into the value a handler function
expects and the function's return value back into bytes. Codecs raise freely;
the adapter chain maps their failures to DecodingError / EncodingError.

An empty payload decodes to None and None encodes to an empty payload, so
handlers without input or output need no special casing.
"""

from typing import Any, Protocol

import cloudpickle
from pydantic import TypeAdapter


class Codec(Protocol):
    def decode(self, payload: bytes) -> Any: ...

    def encode(self, value: Any) -> bytes: ...


class JsonCodec:
    """
    JSON codec validating input against ``input_type`` with pydantic.

    ``input_type`` and ``output_type`` may be anything pydantic can build a
    TypeAdapter for: builtins, typed dicts, dataclasses or BaseModel classes.
    """

    def __init__(self, input_type: Any = Any, output_type: Any = Any):
        self.input_adapter = TypeAdapter(input_type)
        self.output_adapter = TypeAdapter(output_type)

    def decode(self, payload: bytes) -> Any:
        if not payload:
            return self.input_adapter.validate_python(None)
        return self.input_adapter.validate_json(payload)

    def encode(self, value: Any) -> bytes:
        if value is None:
            return b""
        return self.output_adapter.dump_json(value)


class BytesCodec:
    """Identity codec for functions that work on raw bytes or text."""

    def decode(self, payload: bytes) -> Any:
        return payload

    def encode(self, value: Any) -> bytes:
        if value is None:
            return b""
        if isinstance(value, str):
            return value.encode("utf-8")
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        raise TypeError(f"Cannot encode {type(value).__name__} as bytes")


class PickleCodec:
    """Python object codec for callers that pickle with cloudpickle."""

    def decode(self, payload: bytes) -> Any:
        if not payload:
            return None
        return cloudpickle.loads(payload)

    def encode(self, value: Any) -> bytes:
        if value is None:
            return b""
        return cloudpickle.dumps(value)
