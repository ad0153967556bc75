# services/websocket_transport.py
import asyncio
import base64
import json
from typing import Optional

from fastapi import WebSocket

from models.upload_models import Chunk
from services.chunk_reader import TransportError

END_OF_STREAM_EVENT = "end"


class WebSocketChunkTransport:
    """
    Reads upload messages off a WebSocket.

    Binary frames are raw payloads. Text frames are JSON objects carrying
    ``fileName`` and/or a base64 ``payload``, or ``{"event": "end"}`` to close
    the stream.
    """

    def __init__(self, websocket: WebSocket, idle_timeout: Optional[float] = None):
        self.websocket = websocket
        self.idle_timeout = idle_timeout

    async def receive(self) -> Optional[Chunk]:
        try:
            message = await asyncio.wait_for(self.websocket.receive(), timeout=self.idle_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"no message received for {self.idle_timeout}s") from e
        except RuntimeError as e:
            # Starlette raises RuntimeError when receiving after a disconnect
            raise TransportError(str(e)) from e

        if message["type"] == "websocket.disconnect":
            raise TransportError(f"client disconnected (code={message.get('code')})")

        if message.get("bytes") is not None:
            return Chunk(payload=message["bytes"])

        return self._decode_text(message.get("text"))

    @staticmethod
    def _decode_text(text: Optional[str]) -> Optional[Chunk]:
        try:
            data = json.loads(text or "")
        except ValueError as e:
            raise TransportError(f"malformed message: {e}") from e
        if not isinstance(data, dict):
            raise TransportError("malformed message: expected a JSON object")

        if data.get("event") == END_OF_STREAM_EVENT:
            return None

        file_name = data.get("fileName")
        if file_name is not None and not isinstance(file_name, str):
            raise TransportError("malformed message: fileName must be a string")

        payload = b""
        if data.get("payload"):
            try:
                payload = base64.b64decode(data["payload"], validate=True)
            except (ValueError, TypeError) as e:
                raise TransportError(f"malformed payload: {e}") from e

        return Chunk(file_name=file_name, payload=payload)
