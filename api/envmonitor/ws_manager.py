
from typing import Dict, Iterable, List, Optional

from fastapi import WebSocket


class WSManager:
    def __init__(self) -> None:
        # connection -> has granted system-notification permission
        self._connections: Dict[WebSocket, bool] = {}

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self._connections[ws] = False

    def disconnect(self, ws: WebSocket) -> None:
        self._connections.pop(ws, None)

    def set_permission(self, ws: WebSocket, granted: bool) -> None:
        if ws in self._connections:
            self._connections[ws] = bool(granted)

    def permitted(self) -> List[WebSocket]:
        return [ws for ws, granted in self._connections.items() if granted]

    async def broadcast_json(self, payload, targets: Optional[Iterable[WebSocket]] = None) -> int:
        # best-effort broadcast; returns how many connections received it
        sent = 0
        for ws in list(self._connections if targets is None else targets):
            try:
                await ws.send_json(payload)
                sent += 1
            except Exception:
                self.disconnect(ws)
        return sent
