"""WebSocket handler for real-time progress streaming.

This module handles WebSocket connections for streaming run progress to the
dashboard and receiving control commands (pause, resume, stop) from clients.

The broadcaster keeps no history, so a connecting client first receives a
``snapshot`` message with the run's current state and then live events.
"""

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from events import EventType
from models.schemas import RunDetailResponse
from workflow.errors import RunNotFoundError, WorkflowError

if TYPE_CHECKING:
    from run_controller import RunController

logger = structlog.get_logger(__name__)

websocket_router = APIRouter()

# Close code sent when the requested run does not exist.
RUN_NOT_FOUND_CLOSE_CODE = 4404

_run_controller: "RunController | None" = None


def set_run_controller(controller: "RunController") -> None:
    """Set the run controller used by WebSocket command handlers."""
    global _run_controller
    _run_controller = controller
    logger.info("websocket_run_controller_configured")


def get_run_controller() -> "RunController":
    """Return configured run controller for WebSocket command handlers."""
    if _run_controller is None:
        raise RuntimeError(
            "RunController not configured for WebSocket handlers. "
            "Call set_run_controller() during startup."
        )
    return _run_controller


@websocket_router.websocket("/ws/{run_id}")
async def websocket_endpoint(websocket: WebSocket, run_id: str) -> None:
    """WebSocket endpoint for real-time progress streaming.

    This endpoint handles bidirectional communication:
    - Server -> Client: a snapshot, then progress events in sequence order
    - Client -> Server: Commands (pause, resume, stop, ping)

    Args:
        websocket: The WebSocket connection.
        run_id: The run ID to stream events for.
    """
    await websocket.accept()

    logger.info("websocket_connected", run_id=run_id)

    controller = get_run_controller()
    broadcaster = controller.broadcaster

    # Subscribe before taking the snapshot so no event falls between the two.
    # An event may then be reflected in both; clients apply them idempotently.
    queue = broadcaster.subscribe(run_id)

    try:
        try:
            snapshot = controller.get_snapshot(run_id)
        except RunNotFoundError as e:
            logger.warning("websocket_run_not_found", run_id=run_id)
            await websocket.send_json({"type": "error", "error": str(e)})
            await websocket.close(code=RUN_NOT_FOUND_CLOSE_CODE)
            return

        await websocket.send_json(
            {
                "type": "snapshot",
                "run": RunDetailResponse.from_snapshot(snapshot).model_dump(mode="json"),
            }
        )

        if snapshot.is_terminal:
            # Terminal runs publish nothing further.
            await websocket.close()
            return

        async def send_events() -> None:
            """Forward events from the broadcaster to the WebSocket client."""
            try:
                while True:
                    event = await queue.get()
                    # RUN_CLOSED is a sentinel from close_run; stop sending.
                    if event.type == EventType.RUN_CLOSED:
                        logger.info("run_closed_sentinel", run_id=run_id)
                        break

                    await websocket.send_json(event.model_dump(mode="json"))
                    logger.debug(
                        "event_sent",
                        run_id=run_id,
                        event_type=event.type.value,
                        sequence=event.sequence,
                    )
            except WebSocketDisconnect:
                logger.info("websocket_disconnect_during_send", run_id=run_id)
            except Exception as e:
                logger.error("websocket_send_error", run_id=run_id, error=str(e))

        async def receive_commands() -> None:
            """Receive and process commands from the WebSocket client."""
            try:
                while True:
                    data = await websocket.receive_json()
                    if not isinstance(data, dict):
                        logger.warning("invalid_ws_message", run_id=run_id)
                        continue
                    command_type = data.get("type")

                    logger.info(
                        "command_received",
                        run_id=run_id,
                        command_type=command_type,
                    )

                    if command_type == "ping":
                        await websocket.send_json(
                            {"type": "pong", "timestamp": data.get("timestamp")}
                        )
                    elif command_type in ("pause", "resume", "stop"):
                        reply = await handle_run_command(run_id, command_type)
                        await websocket.send_json(reply)
                    else:
                        logger.warning(
                            "unknown_command",
                            run_id=run_id,
                            command_type=command_type,
                        )
                        await websocket.send_json(
                            {
                                "type": "command_error",
                                "command": command_type,
                                "error": f"Unknown command: {command_type}",
                            }
                        )
            except WebSocketDisconnect:
                logger.info("websocket_disconnect_during_receive", run_id=run_id)
            except Exception as e:
                logger.error("websocket_receive_error", run_id=run_id, error=str(e))

        # Run both tasks concurrently
        send_task = asyncio.create_task(send_events())
        receive_task = asyncio.create_task(receive_commands())

        # Wait for either task to complete (disconnect or closed stream)
        done, pending = await asyncio.wait(
            [send_task, receive_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        # Cancel any pending tasks
        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if send_task in done:
            try:
                await websocket.close()
            except RuntimeError as e:
                logger.debug("websocket_already_closed", run_id=run_id, error=str(e))

    except WebSocketDisconnect:
        logger.info("websocket_disconnected", run_id=run_id)
    except Exception as e:
        logger.error("websocket_error", run_id=run_id, error=str(e))
    finally:
        # Clean up subscription
        broadcaster.unsubscribe(run_id, queue)
        logger.info("websocket_cleanup_complete", run_id=run_id)


async def handle_run_command(run_id: str, command: str) -> dict[str, Any]:
    """Apply a pause, resume or stop command from a WebSocket client.

    Args:
        run_id: The run to control.
        command: One of "pause", "resume", "stop".

    Returns:
        A ``command_result`` or ``command_error`` message for the client.
    """
    logger.info("run_command_processing", run_id=run_id, command=command)
    controller = get_run_controller()

    try:
        if command == "pause":
            await controller.pause(run_id)
        elif command == "resume":
            await controller.resume(run_id)
        else:
            await controller.stop(run_id)
    except WorkflowError as e:
        logger.warning("run_command_rejected", run_id=run_id, command=command, error=str(e))
        return {"type": "command_error", "command": command, "error": str(e)}

    return {"type": "command_result", "command": command, "ok": True}
