"""WebSocket server streaming controller state to monitors.

Each client receives the newest ControllerState snapshot as JSON whenever
the control loop publishes one; a slow client only ever skips snapshots.
Clients may send `ping`, `configure` and `set_quality` control messages.
"""

import asyncio
import logging
import time
from typing import Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

from adaptive_bitrate.controller import AdaptiveBitrateController
from adaptive_bitrate.exceptions import ConfigurationError
from adaptive_bitrate.interfaces.stats_source import ITransportStatsSource
from adaptive_bitrate.stats_source import ConnectionQuality, SimulatedStatsSource

logger = logging.getLogger(__name__)


class ClientConnection:
    """Represents a connected WebSocket monitor."""

    def __init__(self, client_id: str, websocket: WebSocket):
        """Initialize client connection.

        Args:
            client_id: Unique client identifier
            websocket: WebSocket connection instance
        """
        self.client_id = client_id
        self.websocket = websocket
        self.connected_at = time.time()
        self.last_tick = 0
        self.states_sent = 0

    async def send_message(self, message: dict) -> bool:
        """Send a JSON message to the client.

        Args:
            message: Message dictionary

        Returns:
            True if sent successfully, False on error
        """
        try:
            await self.websocket.send_json(message)
            return True
        except Exception as e:
            logger.error(
                f"Error sending message to client {self.client_id}: {e}",
                extra={"client_id": self.client_id},
            )
            return False

    def get_connection_duration(self) -> float:
        return time.time() - self.connected_at


class StateStreamingServer:
    """WebSocket fan-out of controller state snapshots."""

    def __init__(
        self,
        controller: AdaptiveBitrateController,
        stats_source: Optional[ITransportStatsSource] = None,
    ):
        """Initialize streaming server.

        Args:
            controller: Controller whose state is streamed
            stats_source: Stats source, used for `set_quality` when simulated
        """
        self.controller = controller
        self.stats_source = stats_source
        self.clients: Dict[str, ClientConnection] = {}
        self.next_client_id = 0

        logger.info("State streaming server initialized")

    def _generate_client_id(self) -> str:
        client_id = f"client_{self.next_client_id}"
        self.next_client_id += 1
        return client_id

    async def handle_connection(self, websocket: WebSocket) -> None:
        """Handle WebSocket connection lifecycle.

        Args:
            websocket: WebSocket connection instance
        """
        await websocket.accept()

        client_id = self._generate_client_id()
        client = ClientConnection(client_id, websocket)
        self.clients[client_id] = client

        logger.info(
            f"Client connected: {client_id} (total clients: {len(self.clients)})",
            extra={"client_id": client_id},
        )

        try:
            await client.send_message(
                {
                    "type": "welcome",
                    "client_id": client_id,
                    "config": self.controller.config.to_dict(),
                }
            )

            streaming_task = asyncio.create_task(self._stream_to_client(client))
            control_task = asyncio.create_task(self._handle_control_messages(client))

            # Wait for either task to complete
            done, pending = await asyncio.wait(
                [streaming_task, control_task], return_when=asyncio.FIRST_COMPLETED
            )

            for task in pending:
                task.cancel()

        except WebSocketDisconnect:
            logger.info(
                f"Client {client_id} disconnected normally",
                extra={"client_id": client_id},
            )
        except Exception as e:
            logger.error(
                f"Error handling client {client_id}: {e}", extra={"client_id": client_id}
            )
        finally:
            if client_id in self.clients:
                del self.clients[client_id]

            logger.info(
                f"Client {client_id} removed "
                f"(duration: {client.get_connection_duration():.1f}s, "
                f"states sent: {client.states_sent}, "
                f"remaining clients: {len(self.clients)})"
            )

    async def _stream_to_client(self, client: ClientConnection) -> None:
        """Push every published snapshot to the client."""
        queue = self.controller.subscribe_state()
        try:
            while True:
                state = await queue.get()
                success = await client.send_message(state.to_json())
                if not success:
                    logger.warning(f"Failed to send state to {client.client_id}, closing")
                    break
                client.last_tick = state.tick
                client.states_sent += 1
        finally:
            self.controller.unsubscribe_state(queue)

    async def _handle_control_messages(self, client: ClientConnection) -> None:
        """Handle control messages from client."""
        while True:
            try:
                message = await client.websocket.receive_json()
                msg_type = message.get("type")

                if msg_type == "ping":
                    await client.send_message({"type": "pong", "timestamp": time.time()})

                elif msg_type == "configure":
                    logger.info(
                        f"Configure message from {client.client_id}: {message}",
                        extra={"client_id": client.client_id},
                    )
                    current = self.controller.config
                    try:
                        config = self.controller.configure(
                            min_bitrate_bps=message.get(
                                "min_bitrate_bps", current.min_bitrate_bps
                            ),
                            max_bitrate_bps=message.get(
                                "max_bitrate_bps", current.max_bitrate_bps
                            ),
                            latency_ms=message.get("latency_ms", current.latency_ms),
                        )
                    except ConfigurationError as e:
                        await client.send_message({"type": "error", "message": str(e)})
                        continue
                    await client.send_message({"type": "config", **config.to_dict()})

                elif msg_type == "set_quality":
                    if isinstance(self.stats_source, SimulatedStatsSource):
                        try:
                            self.stats_source.update_quality(message.get("quality"))
                        except ValueError:
                            await client.send_message(
                                {
                                    "type": "error",
                                    "message": f"Unknown quality: {message.get('quality')}",
                                    "valid": [q.value for q in ConnectionQuality],
                                }
                            )
                    else:
                        await client.send_message(
                            {"type": "error", "message": "Stats source is not simulated"}
                        )

                else:
                    logger.warning(
                        f"Unknown message type from {client.client_id}: {msg_type}"
                    )

            except WebSocketDisconnect:
                break
            except Exception as e:
                logger.error(f"Error receiving message from {client.client_id}: {e}")
                break

    def get_active_connections(self) -> int:
        return len(self.clients)

    def get_client_stats(self) -> list[dict]:
        """Get statistics for all connected clients.

        Returns:
            List of client stat dictionaries
        """
        return [
            {
                "client_id": client.client_id,
                "connected_at": client.connected_at,
                "duration_sec": client.get_connection_duration(),
                "last_tick": client.last_tick,
                "states_sent": client.states_sent,
            }
            for client in self.clients.values()
        ]
