"""
Chat protocol codec.

Outgoing messages are built from the text the user types (``encode``) and
serialized to the exact field set of the wire contract. Incoming frames are
projected onto one typed variant per ``type`` (``decode``); anything that
cannot be projected becomes ``Unrecognized`` instead of an exception, so a
bad frame never stops the receive loop.

Wire contract (one JSON object per frame, discriminated by ``type``):

    client -> server   chat{text} setName{name} status{} listUsers{}
                       ping{token?} ai{prompt}
    server -> client   chat{from,text} system{text} ackName{name}
                       status{version,uptimeSeconds,userCount,...}
                       listUsers{users[{id,name,ip}]} error{message}
                       pong{token?} ai{from,prompt,response,responseMs,...}

Every server message may carry ``at`` (unix ms); it is optional and never
part of equality.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple, Type, Union

from shared.errors import (
    EmptyInputError,
    MessageTooLongError,
    MissingArgumentError,
    UnknownCommandError,
)
from shared.message_types import IncomingType, OutgoingType

MAX_CHAT_LENGTH = 500
MAX_AI_LENGTH = 1000

RawFrame = Union[str, bytes, bytearray, Mapping[str, Any]]


class MalformedPayloadError(Exception):
    """Raised internally when a known message type lacks a required field."""


def _to_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"), sort_keys=True)


# ========================================
#           OUTGOING MESSAGES
# ========================================

class OutgoingMessage:
    """Base class of everything the client transmits."""

    type: ClassVar[OutgoingType]

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value}

    def to_json(self) -> str:
        return _to_json(self.to_dict())


@dataclass
class ChatMessage(OutgoingMessage):
    type: ClassVar[OutgoingType] = OutgoingType.CHAT
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "text": self.text}


@dataclass
class SetName(OutgoingMessage):
    type: ClassVar[OutgoingType] = OutgoingType.SET_NAME
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "name": self.name}


@dataclass
class StatusRequest(OutgoingMessage):
    type: ClassVar[OutgoingType] = OutgoingType.STATUS


@dataclass
class ListUsersRequest(OutgoingMessage):
    type: ClassVar[OutgoingType] = OutgoingType.LIST_USERS


@dataclass
class Ping(OutgoingMessage):
    type: ClassVar[OutgoingType] = OutgoingType.PING
    token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type.value}
        if self.token:
            result["token"] = self.token
        return result


@dataclass
class AiRequest(OutgoingMessage):
    type: ClassVar[OutgoingType] = OutgoingType.AI
    question: str

    def to_dict(self) -> Dict[str, Any]:
        # the contract names the question "prompt"
        return {"type": self.type.value, "prompt": self.question}


# ========================================
#           COMMAND PARSING
# ========================================

def _parse_name(arg: str) -> OutgoingMessage:
    if not arg:
        raise MissingArgumentError("/name", "name", usage="/name <new_name>")
    return SetName(arg)


def _parse_status(arg: str) -> OutgoingMessage:
    return StatusRequest()


def _parse_users(arg: str) -> OutgoingMessage:
    return ListUsersRequest()


def _parse_ping(arg: str) -> OutgoingMessage:
    return Ping(token=arg or None)


def _parse_ai(arg: str) -> OutgoingMessage:
    if not arg:
        raise MissingArgumentError("/ai", "question", usage="/ai <question>")
    if len(arg) > MAX_AI_LENGTH:
        raise MessageTooLongError("Question", MAX_AI_LENGTH)
    return AiRequest(arg)


_COMMAND_PARSERS: Dict[str, Callable[[str], OutgoingMessage]] = {
    "/name": _parse_name,
    "/status": _parse_status,
    "/users": _parse_users,
    "/ping": _parse_ping,
    "/ai": _parse_ai,
}


def split_command(text: str) -> Tuple[str, str]:
    """Split ``/word rest`` into ``("/word", "rest")`` with ``rest`` trimmed."""
    parts = text.strip().split(None, 1)
    if not parts:
        return "", ""
    word = parts[0]
    arg = parts[1].strip() if len(parts) > 1 else ""
    return word, arg


def encode(command_text: str) -> OutgoingMessage:
    """
    Map a line of user input onto the message it should send.

    Raises:
        EmptyInputError: input is empty or whitespace only
        MissingArgumentError: ``/name`` or ``/ai`` without an argument
        UnknownCommandError: ``/word`` that is not a known command
        MessageTooLongError: chat text or AI question over the length limit
    """
    text = command_text.strip()
    if not text:
        raise EmptyInputError()

    if not text.startswith("/"):
        if len(text) > MAX_CHAT_LENGTH:
            raise MessageTooLongError("Message", MAX_CHAT_LENGTH)
        return ChatMessage(text)

    word, arg = split_command(text)
    parser = _COMMAND_PARSERS.get(word)
    if parser is None:
        raise UnknownCommandError(word)
    return parser(arg)


# ========================================
#           FIELD VALIDATION HELPERS
# ========================================
"""
Helpers used by the incoming variants to project an untyped JSON object
onto typed fields. Each raises MalformedPayloadError with the field name.
"""

def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        raise MalformedPayloadError(f"missing '{key}'")
    if not isinstance(value, str):
        raise MalformedPayloadError(f"'{key}' must be a string")
    return value


def _optional_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    if data.get(key) is None:
        return None
    return _require_str(data, key)


def _require_count(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        raise MalformedPayloadError(f"missing '{key}'")
    if not _is_int(value) or value < 0:
        raise MalformedPayloadError(f"'{key}' must be a non-negative integer")
    return value


def _optional_count(data: Mapping[str, Any], key: str) -> Optional[int]:
    if data.get(key) is None:
        return None
    return _require_count(data, key)


def _require_number(data: Mapping[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        raise MalformedPayloadError(f"missing '{key}'")
    if not _is_number(value):
        raise MalformedPayloadError(f"'{key}' must be a number")
    return value


def _optional_number(data: Mapping[str, Any], key: str) -> Optional[float]:
    if data.get(key) is None:
        return None
    return _require_number(data, key)


def _optional_bool(data: Mapping[str, Any], key: str) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise MalformedPayloadError(f"'{key}' must be a boolean")
    return value


def _timestamp(data: Mapping[str, Any]) -> Optional[int]:
    value = data.get("at")
    if _is_int(value) and value >= 0:
        return value
    return None


def _put(result: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        result[key] = value


# ========================================
#           INCOMING MESSAGES
# ========================================

class IncomingMessage:
    """Base class of everything ``decode`` can return."""

    type: ClassVar[Optional[IncomingType]] = None
    at: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IncomingMessage:
        raise NotImplementedError

    def _fields(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Wire form of the message, as the server would have sent it."""
        result: Dict[str, Any] = {"type": self.type.value}
        result.update(self._fields())
        _put(result, "at", self.at)
        return result


@dataclass
class Chat(IncomingMessage):
    type: ClassVar[IncomingType] = IncomingType.CHAT
    sender: str
    text: str
    at: Optional[int] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Chat:
        return cls(
            sender=_require_str(data, "from"),
            text=_require_str(data, "text"),
            at=_timestamp(data),
        )

    def _fields(self) -> Dict[str, Any]:
        return {"from": self.sender, "text": self.text}


@dataclass
class System(IncomingMessage):
    type: ClassVar[IncomingType] = IncomingType.SYSTEM
    text: str
    at: Optional[int] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> System:
        return cls(text=_require_str(data, "text"), at=_timestamp(data))

    def _fields(self) -> Dict[str, Any]:
        return {"text": self.text}


@dataclass
class AckName(IncomingMessage):
    type: ClassVar[IncomingType] = IncomingType.ACK_NAME
    name: str
    at: Optional[int] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AckName:
        return cls(name=_require_str(data, "name"), at=_timestamp(data))

    def _fields(self) -> Dict[str, Any]:
        return {"name": self.name}


@dataclass
class Status(IncomingMessage):
    """Server statistics, the reply to ``/status``."""

    type: ClassVar[IncomingType] = IncomingType.STATUS
    version: str
    uptime_seconds: int
    user_count: int
    messages_sent: int
    messages_per_second: float
    memory_mb: float
    rust_version: Optional[str] = None
    os: Optional[str] = None
    cpu_cores: Optional[int] = None
    peak_users: Optional[int] = None
    connections_total: Optional[int] = None
    ai_enabled: Optional[bool] = None
    ai_model: Optional[str] = None
    at: Optional[int] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Status:
        return cls(
            version=_require_str(data, "version"),
            uptime_seconds=_require_count(data, "uptimeSeconds"),
            user_count=_require_count(data, "userCount"),
            messages_sent=_require_count(data, "messagesSent"),
            messages_per_second=_require_number(data, "messagesPerSecond"),
            memory_mb=_require_number(data, "memoryMb"),
            rust_version=_optional_str(data, "rustVersion"),
            os=_optional_str(data, "os"),
            cpu_cores=_optional_count(data, "cpuCores"),
            peak_users=_optional_count(data, "peakUsers"),
            connections_total=_optional_count(data, "connectionsTotal"),
            ai_enabled=_optional_bool(data, "aiEnabled"),
            ai_model=_optional_str(data, "aiModel"),
            at=_timestamp(data),
        )

    def _fields(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "version": self.version,
            "uptimeSeconds": self.uptime_seconds,
            "userCount": self.user_count,
            "messagesSent": self.messages_sent,
            "messagesPerSecond": self.messages_per_second,
            "memoryMb": self.memory_mb,
        }
        _put(result, "rustVersion", self.rust_version)
        _put(result, "os", self.os)
        _put(result, "cpuCores", self.cpu_cores)
        _put(result, "peakUsers", self.peak_users)
        _put(result, "connectionsTotal", self.connections_total)
        _put(result, "aiEnabled", self.ai_enabled)
        _put(result, "aiModel", self.ai_model)
        return result


@dataclass
class UserInfo:
    id: str
    name: str
    ip: str

    @classmethod
    def from_dict(cls, data: Any) -> UserInfo:
        if not isinstance(data, dict):
            raise MalformedPayloadError("user entry must be an object")
        return cls(
            id=_require_str(data, "id"),
            name=_require_str(data, "name"),
            ip=_require_str(data, "ip"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "ip": self.ip}


@dataclass
class ListUsers(IncomingMessage):
    type: ClassVar[IncomingType] = IncomingType.LIST_USERS
    users: List[UserInfo] = field(default_factory=list)
    at: Optional[int] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ListUsers:
        users = data.get("users")
        if not isinstance(users, list):
            raise MalformedPayloadError("'users' must be a list")
        return cls(users=[UserInfo.from_dict(u) for u in users], at=_timestamp(data))

    def _fields(self) -> Dict[str, Any]:
        return {"users": [u.to_dict() for u in self.users]}


@dataclass
class ServerError(IncomingMessage):
    type: ClassVar[IncomingType] = IncomingType.ERROR
    message: str
    at: Optional[int] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ServerError:
        return cls(message=_require_str(data, "message"), at=_timestamp(data))

    def _fields(self) -> Dict[str, Any]:
        return {"message": self.message}


@dataclass
class Pong(IncomingMessage):
    type: ClassVar[IncomingType] = IncomingType.PONG
    token: Optional[str] = None
    at: Optional[int] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Pong:
        return cls(token=_optional_str(data, "token"), at=_timestamp(data))

    def _fields(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        _put(result, "token", self.token)
        return result


@dataclass
class Ai(IncomingMessage):
    """An AI answer. The server broadcasts these to every client."""

    type: ClassVar[IncomingType] = IncomingType.AI
    sender: str
    prompt: str
    response: str
    response_ms: int
    tokens: Optional[int] = None
    cost: Optional[float] = None
    at: Optional[int] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Ai:
        return cls(
            sender=_require_str(data, "from"),
            prompt=_require_str(data, "prompt"),
            response=_require_str(data, "response"),
            response_ms=_require_count(data, "responseMs"),
            tokens=_optional_count(data, "tokens"),
            cost=_optional_number(data, "cost"),
            at=_timestamp(data),
        )

    def _fields(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "from": self.sender,
            "prompt": self.prompt,
            "response": self.response,
            "responseMs": self.response_ms,
        }
        _put(result, "tokens", self.tokens)
        _put(result, "cost", self.cost)
        return result


@dataclass
class Unrecognized(IncomingMessage):
    """A frame the codec could not interpret. ``raw`` is the frame as received."""

    raw: Any
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.raw, dict):
            return dict(self.raw)
        return {"raw": self.raw if isinstance(self.raw, str) else repr(self.raw)}


_INCOMING: Dict[IncomingType, Type[IncomingMessage]] = {
    IncomingType.CHAT: Chat,
    IncomingType.SYSTEM: System,
    IncomingType.ACK_NAME: AckName,
    IncomingType.STATUS: Status,
    IncomingType.LIST_USERS: ListUsers,
    IncomingType.ERROR: ServerError,
    IncomingType.PONG: Pong,
    IncomingType.AI: Ai,
}


def decode(raw: RawFrame) -> IncomingMessage:
    """
    Decode one inbound frame. Never raises.

    Text and binary frames are parsed as JSON; an already-parsed mapping is
    accepted as is. Fields a variant does not know are ignored.
    """
    if isinstance(raw, Mapping):
        data: Any = raw
    else:
        try:
            text = bytes(raw).decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
            data = json.loads(text)
        except (UnicodeDecodeError, ValueError, TypeError, RecursionError):
            return Unrecognized(raw=raw, reason="invalid JSON")

    if not isinstance(data, Mapping) or not isinstance(data.get("type"), str):
        return Unrecognized(raw=raw, reason="missing type")

    type_name = data["type"]
    if not IncomingType.is_valid(type_name):
        return Unrecognized(raw=raw, reason=f"unknown type: {type_name}")

    variant = _INCOMING[IncomingType.from_string(type_name)]
    try:
        return variant.from_dict(data)
    except MalformedPayloadError as e:
        return Unrecognized(raw=raw, reason=f"malformed {type_name} payload: {e}")
