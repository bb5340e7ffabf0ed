import logging
import time
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wander_chat.agent import AgentModelClient
from wander_chat.config import get_settings
from wander_chat.conversations.store import ConversationStore, normalize_user_id
from wander_chat.middleware.request_context import bind_request, configure_logging
from wander_chat.models import ChatRequest
from wander_chat.orchestrator import ChatOrchestrator
from wander_chat.streaming import SSEStreamAdapter, streaming_response
from wander_chat.tools.policy import default_tool_policy

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

ERROR_BODY = {"error": "Something went wrong. Please try again later."}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Fails startup with ConfigurationError when credentials are missing.
    settings.validate()
    store = ConversationStore(max_conversations=settings.max_conversations)
    model = AgentModelClient(settings.chat_model)
    app.state.orchestrator = ChatOrchestrator(store, model, default_tool_policy())
    logger.info("Wander Chat service started (model=%s)", settings.chat_model)
    yield
    logger.info("Wander Chat service shutting down")


app = FastAPI(title="Wander Chat", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Access-Control-Allow-Origin", "Origin", "Content-Length", "Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["Content-Length", "Content-Type", "X-Request-ID"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = bind_request(request.headers.get("X-Request-ID"))
    logger.info("%s %s", request.method, request.url.path)
    start = time.time()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("Unhandled exception during %s %s", request.method, request.url.path)
        raise
    duration_ms = (time.time() - start) * 1000
    level = logging.WARNING if response.status_code >= 400 else logging.INFO
    logger.log(
        level, "%s %s completed %d in %.2fms",
        request.method, request.url.path, response.status_code, duration_ms,
    )
    response.headers["X-Request-ID"] = request_id
    return response


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/chat")
async def chat(req: ChatRequest, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    user_id = normalize_user_id(req.user_id)
    logger.info("Invoking chat for user_id=%s", user_id)
    try:
        reply = await orchestrator.respond(user_id, req.message, req.context)
    except Exception:
        logger.exception("Chat turn failed for user_id=%s", user_id)
        return JSONResponse(status_code=500, content=ERROR_BODY)

    return {
        "id": f"chatcmpl-{uuid.uuid4().hex[:12]}",
        "object": "chat.completion",
        "created": int(time.time()),
        "model": settings.chat_model,
        "user_id": user_id,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": reply},
                "finish_reason": "stop",
            }
        ],
    }


@app.post("/chat/stream")
async def chat_stream(
    req: ChatRequest,
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    user_id = normalize_user_id(req.user_id)
    logger.info("Starting chat stream request for user_id=%s", user_id)
    fragments = orchestrator.respond_streaming(user_id, req.message, req.context)
    return streaming_response(SSEStreamAdapter(fragments, request.is_disconnected))


def run() -> None:
    uvicorn.run("wander_chat.main:app", host=settings.host, port=settings.port)
