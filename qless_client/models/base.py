"""
Base class for entities bound to a client.
"""

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, PrivateAttr

if TYPE_CHECKING:
    from qless_client.client import Client


class ClientBound(BaseModel):
    """
    Entity that carries a back-reference to the client used for remote
    operations.

    The reference is a private attribute: it is never serialised and must be
    attached after every decode.
    """

    _client: Any = PrivateAttr(default=None)

    @property
    def client(self) -> "Client":
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} is not attached to a client")
        return self._client

    def attach(self, client: "Client") -> "ClientBound":
        """Attach the client used for remote operations; returns self."""
        self._client = client
        return self

    def _invoke(self, opcode: str, *args: Any) -> Any:
        return self.client.invoke(opcode, *args)
