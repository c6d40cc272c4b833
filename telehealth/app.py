import json
import logging
from contextlib import asynccontextmanager, AsyncExitStack
from datetime import datetime, timezone

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from telehealth.agent.agent_core import ConversationAgent, build_chat_graph, open_checkpointer
from telehealth.auth import auth_routes
from telehealth.auth.middleware import authenticate_token
from telehealth.config import settings
from telehealth.errors import ApiError, api_error_handler, http_exception_handler, request_validation_handler
from telehealth.logging_config import configure_logging
from telehealth.routers import chatbot, doctor_dashboard, doctor_profile, notification_preferences, notifications
from telehealth.services.chatbot_service import chatbot_service
from telehealth.services.notification_hub import notification_hub
from telehealth.services.rate_limiter import rate_limiter

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Compiles the conversation graph and opens its checkpointer ONCE."""
    async with AsyncExitStack() as stack:
        checkpointer = await open_checkpointer(stack)
        chatbot_service.attach_agent(
            ConversationAgent(graph=build_chat_graph(checkpointer), checkpointer=checkpointer)
        )
        logger.info("Conversation graph compiled (storage=%s, auth=%s)", settings.STORAGE_BACKEND, settings.AUTH_MODE)
        yield
        await rate_limiter.close()


app = FastAPI(title="Telehealth API", lifespan=lifespan)

# CORS Middleware Setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ApiError, api_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

app.include_router(auth_routes.router)
app.include_router(chatbot.router)
app.include_router(notifications.router)
app.include_router(notification_preferences.router)
app.include_router(doctor_profile.router)
app.include_router(doctor_dashboard.router)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "websocket_connections": notification_hub.connection_count,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# --- NOTIFICATION STREAM ---

@app.websocket("/ws/notifications")
async def notifications_websocket(websocket: WebSocket):
    token = websocket.query_params.get("token")
    if token:
        user = await authenticate_token(token)
    else:
        user = await authenticate_token(websocket.cookies.get(settings.SESSION_COOKIE_NAME), is_session_cookie=True)
    if not user:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user_id = user["id"]
    await notification_hub.connect(user_id, websocket)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                client_message = json.loads(data)
            except ValueError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            if isinstance(client_message, dict) and client_message.get("type") == "ping":
                await websocket.send_json({
                    "type": "pong",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                })

    except WebSocketDisconnect:
        logger.info("Client %s disconnected.", user_id)
    finally:
        notification_hub.disconnect(user_id, websocket)
