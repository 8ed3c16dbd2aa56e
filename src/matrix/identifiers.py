"""Parsing of Matrix user and room identifiers."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict

from src.core.exceptions import InvalidHandleError, MalformedIdentifierError

# hostname or bracketed IPv6 literal, optional port
_SERVER_NAME = r"(?:\[[0-9A-Fa-f:.]+\]|[A-Za-z0-9.\-]+)(?::[0-9]{1,5})?"

_USER_ID_RE = re.compile(rf"^@(?P<localpart>[^:\s]+):(?P<server>{_SERVER_NAME})$")
_ROOM_ID_RE = re.compile(rf"^!(?P<opaque>[^:\s]+):(?P<server>{_SERVER_NAME})$")


class UserId(BaseModel):
    """A fully-qualified Matrix user id, e.g. ``@bot:example.com``."""

    model_config = ConfigDict(frozen=True)

    localpart: str
    server_name: str

    def __str__(self) -> str:
        return f"@{self.localpart}:{self.server_name}"


def parse_user_id(handle: str) -> UserId:
    """Split a user handle into localpart and server name.

    Raises:
        InvalidHandleError: If *handle* is not ``@localpart:server``.
    """
    match = _USER_ID_RE.match(handle.strip())
    if match is None:
        raise InvalidHandleError(f"failed to parse matrix user id '{handle}'")
    return UserId(localpart=match["localpart"], server_name=match["server"])


def parse_room_id(room_id: str) -> str:
    """Validate a room id of the form ``!opaque:server``.

    Raises:
        MalformedIdentifierError: If *room_id* is not a valid room id.
    """
    candidate = room_id.strip()
    if _ROOM_ID_RE.match(candidate) is None:
        raise MalformedIdentifierError(f"failed to parse matrix room id '{room_id}'")
    return candidate
