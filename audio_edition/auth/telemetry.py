"""
Telemetry Encoder
=================
Builds the value of the ``Auth0-Client`` header sent with the login POST.

The sign-on page packs the telemetry JSON one UTF-16 code unit per byte
(only the low byte of each unit survives), Base64-encodes it with the
standard alphabet and ``=`` padding, then swaps ``+``/``/`` for ``-``/``_``.
The server validates the result, so the packing must match exactly.
"""

import base64
import json
from typing import Mapping


def _code_unit_bytes(text: str) -> bytes:
    raw = text.encode("utf-16-le", "surrogatepass")
    # low byte of every little-endian code unit
    return raw[0::2]


def encode(text: str) -> str:
    """URL-safe, padded Base64 of *text* packed one code unit per byte."""
    return base64.urlsafe_b64encode(_code_unit_bytes(text)).decode("ascii")


def client_header(version: str, name: str = "auth0.js") -> str:
    """Encoded ``Auth0-Client`` value for the given client library version."""
    return encode(_dump({"name": name, "version": version}))


def _dump(payload: Mapping[str, str]) -> str:
    # compact separators, same bytes as JSON.stringify
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
