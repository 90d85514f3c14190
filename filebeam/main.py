"""
FileBeam relay — FastAPI application entry point.

Serves the signaling WebSocket at /ws and the HTTP liveness routes.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from filebeam.api.routes import init_routes, router
from filebeam.config import API_HOST, API_PORT, APP_NAME, APP_VERSION, CLIENT_URL, REJOIN_POLICY
from filebeam.signaling.models import RejoinPolicy
from filebeam.signaling.registry import RoomRegistry
from filebeam.signaling.relay import SignalingRelay

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- Service singletons ---
registry = RoomRegistry(rejoin_policy=RejoinPolicy(REJOIN_POLICY))
relay = SignalingRelay(registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"{APP_NAME} relay ready — {API_HOST}:{API_PORT}, "
        f"rejoin policy: {registry.rejoin_policy.value}"
    )
    yield
    logger.info(
        f"Shutting down {APP_NAME} relay "
        f"({relay.connection_count} connections, {len(registry)} rooms)"
    )


# --- FastAPI app ---
app = FastAPI(
    title=APP_NAME,
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[CLIENT_URL],
    allow_credentials=CLIENT_URL != "*",
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

init_routes(relay)
app.include_router(router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    connection_id = await relay.connect(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            await relay.handle_message(connection_id, raw)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"Relay error for {connection_id}: {e}", exc_info=True)
    finally:
        await relay.on_disconnect(connection_id)


def run() -> None:
    import uvicorn

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )


if __name__ == "__main__":
    run()
