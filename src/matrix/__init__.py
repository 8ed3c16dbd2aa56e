"""Matrix client, identifier parsing and the retrying chat gateway."""

from src.matrix.client import MatrixClient
from src.matrix.gateway import ChatGateway, create_chat_gateway
from src.matrix.identifiers import UserId, parse_room_id, parse_user_id

__all__ = [
    "ChatGateway",
    "MatrixClient",
    "UserId",
    "create_chat_gateway",
    "parse_room_id",
    "parse_user_id",
]
