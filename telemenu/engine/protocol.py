"""Callback data codec.

Every interactive button carries a short token in Telegram ``callback_data``
(64 bytes max). Tokens look like::

    <op>:<target>[/<origin>][:<payload>]

``op`` is a single character (see :class:`Op`). ``target`` and ``origin`` are
menu/action ids and may not contain ``:`` or ``/``. The payload is either a
bare scalar (for ``{"id": <scalar>}`` payloads) or compact JSON.
"""

from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..exceptions import CallbackDataTooLongError, InvalidCallbackDataError

TELEGRAM_CALLBACK_DATA_LIMIT = 64

_INT_RE = re.compile(r"-?\d+")
_FORBIDDEN_ID_CHARS = (":", "/")


class Op(str, enum.Enum):
    NAVIGATE = "n"
    ACTION = "a"
    INLINE = "i"
    PAGE = "p"
    REFRESH = "r"
    TAB = "t"
    NOOP = "_"
    CHOICE = "k"
    CANCEL = "x"


@dataclass(frozen=True)
class CallbackData:
    """Decoded callback token."""

    op: Op
    target: str
    origin: Optional[str] = None
    payload: Optional[dict[str, Any]] = None

    @property
    def payload_id(self) -> Any:
        """Return ``payload["id"]`` or None."""
        if not self.payload:
            return None
        return self.payload.get("id")


def validate_id(value: str, *, kind: str = "id") -> str:
    """Ensure an id can be embedded in a callback token."""
    if not isinstance(value, str) or not value:
        raise ValueError(f"{kind} must be a non-empty string")
    for char in _FORBIDDEN_ID_CHARS:
        if char in value:
            raise ValueError(f"{kind} {value!r} may not contain {char!r}")
    return value


def compact_id(value: str) -> Any:
    """Return ``value`` as an int when it reads back unchanged, else as is.

    Lets keys like ``"0"`` use the bare payload form (``t:menu:0``).
    """
    if _INT_RE.fullmatch(value) and str(int(value)) == value:
        return int(value)
    return value


def encode_payload(payload: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Encode a payload map, using the bare scalar form when possible."""
    if payload is None:
        return None
    if not isinstance(payload, Mapping):
        raise ValueError(f"Payload must be a mapping, got {type(payload).__name__}")

    if len(payload) == 1 and "id" in payload:
        value = payload["id"]
        if type(value) is int:
            return str(value)
        if (
            isinstance(value, str)
            and value
            and not value.startswith("{")
            and not _INT_RE.fullmatch(value)
        ):
            return value

    return json.dumps(dict(payload), separators=(",", ":"), ensure_ascii=False)


def decode_payload(raw: str) -> Optional[dict[str, Any]]:
    """Inverse of :func:`encode_payload`."""
    if raw == "":
        return None
    if raw.startswith("{"):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidCallbackDataError(f"Malformed payload: {raw!r}") from e
        if not isinstance(decoded, dict):
            raise InvalidCallbackDataError(f"Payload is not an object: {raw!r}")
        return decoded
    if _INT_RE.fullmatch(raw):
        return {"id": int(raw)}
    return {"id": raw}


class CallbackCodec:
    """Encode/decode callback tokens under a byte budget."""

    def __init__(self, max_bytes: Optional[int] = TELEGRAM_CALLBACK_DATA_LIMIT) -> None:
        self.max_bytes = max_bytes

    def encode(
        self,
        op: Op,
        target: str,
        origin: Optional[str] = None,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Build a token; raise CallbackDataTooLongError instead of truncating."""
        validate_id(target, kind="target")
        token = f"{op.value}:{target}"
        if origin is not None:
            validate_id(origin, kind="origin")
            token += f"/{origin}"

        encoded_payload = encode_payload(payload)
        if encoded_payload is not None:
            token += f":{encoded_payload}"

        if self.max_bytes is not None:
            size = len(token.encode("utf-8"))
            if size > self.max_bytes:
                raise CallbackDataTooLongError(token, size, self.max_bytes)
        return token

    def decode(self, token: str) -> CallbackData:
        """Split a token into its parts without looking anything up."""
        if not token or len(token) < 3 or token[1] != ":":
            raise InvalidCallbackDataError(f"Malformed callback data: {token!r}")

        try:
            op = Op(token[0])
        except ValueError as e:
            raise InvalidCallbackDataError(f"Unknown operation in {token!r}") from e

        head, sep, raw_payload = token[2:].partition(":")
        target, slash, origin = head.partition("/")
        if not target:
            raise InvalidCallbackDataError(f"Missing target in {token!r}")
        if slash and not origin:
            raise InvalidCallbackDataError(f"Empty origin in {token!r}")

        return CallbackData(
            op=op,
            target=target,
            origin=origin if slash else None,
            payload=decode_payload(raw_payload) if sep else None,
        )

    def decode_or_none(self, token: Optional[str]) -> Optional[CallbackData]:
        """Decode, returning None for missing or malformed tokens."""
        if not token:
            return None
        try:
            return self.decode(token)
        except InvalidCallbackDataError:
            return None
