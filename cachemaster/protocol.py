"""JSON request format exchanged with cache servers and clients, and its dispatch."""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Tuple

from .buffer import Buffer

_log = logging.getLogger(__name__)

Address = Tuple[str, int]


class ProtocolError(ValueError):
    """Raised when a request cannot be decoded."""


class MachineType(enum.IntEnum):
    CACHE_SERVER = 0
    CLIENT = 1
    MASTER = 2


class ReqType(enum.IntEnum):
    KEEP_ALIVE = 0


class ClientReqType(enum.IntEnum):
    DISTRIBUTION_REQUEST = 0
    DISTRIBUTION_RESPONSE = 1


class CacheServerResponse(enum.IntEnum):
    ADD_CACHE_SERVER = 0
    SHUTDOWN_CACHE = 1
    REFLESH_IP = 2


@dataclass(frozen=True)
class Req:
    """The header every request carries: who sent it and what it asks for."""

    machine_type: int
    req_type: int

    def to_json(self) -> str:
        """Encode as compact JSON with sorted keys."""
        return json.dumps(
            {"machineType": int(self.machine_type), "req_type": int(self.req_type)},
            separators=(",", ":"),
            sort_keys=True,
        )


def _as_int(document: dict, key: str) -> int:
    try:
        value = document[key]
    except KeyError:
        raise ProtocolError(f"missing field {key!r}") from None
    if not isinstance(value, (bool, int, float)):
        raise ProtocolError(f"field {key!r} is not a number")
    return int(value)


def parse_req(text: str) -> Req:
    """Decode a request header from JSON text."""
    try:
        document: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(document, dict):
        raise ProtocolError("request is not a JSON object")
    return Req(_as_int(document, "machineType"), _as_int(document, "req_type"))


class RequestHandler(Protocol):
    """What a request is dispatched to."""

    def cache_server_keep_alive(self, addr: Address) -> Any: ...

    def client_get_distribution(self, addr: Address) -> Any: ...


class Request:
    """Decodes the contents of a read buffer and dispatches it to a handler."""

    def __init__(self, handler: RequestHandler) -> None:
        self.handler = handler
        self.req: Optional[Req] = None
        self.addr: Optional[Address] = None

    def parse(self, buffer: Buffer, addr: Address) -> bool:
        """Consume the buffer and dispatch; False if the machine type is unknown.

        Raises ProtocolError if the buffer does not hold a valid request.
        """
        self.req = parse_req(buffer.retrieve_all_as_str())
        self.addr = addr
        machine = self.req.machine_type
        if machine == MachineType.CACHE_SERVER:
            self._from_cache_server()
        elif machine == MachineType.CLIENT:
            self._from_client()
        elif machine == MachineType.MASTER:
            _log.debug("request from master ignored")
        else:
            return False
        return True

    def _from_cache_server(self) -> bool:
        if self.req.req_type == ReqType.KEEP_ALIVE:
            self.handler.cache_server_keep_alive(self.addr)
            return True
        return False

    def _from_client(self) -> bool:
        if self.req.req_type == ClientReqType.DISTRIBUTION_REQUEST:
            self.handler.client_get_distribution(self.addr)
            return True
        return False


def make_response(buffer: Buffer, msg: str) -> None:
    """Write a response message into ``buffer``."""
    buffer.append(msg)