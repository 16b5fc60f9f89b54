# ============================================================
# Harmony Chat FastAPI App
# ------------------------------------------------------------
# This app wires everything together:
#   - Validation gate + Harmony prompt encoding
#   - Two-pass (analysis -> final) streaming orchestrator
#   - llama.cpp or Echo inference backends
#   - Model artifact status / download
# ============================================================

import asyncio
import json
import logging
from contextlib import aclosing, asynccontextmanager
from typing import Any, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

# --- Local imports ---
from harmony_chat.errors import MessageValidationError, ModelStoreError
from harmony_chat.settings import Settings, settings
from harmony_chat.harmony import ReasoningMode, validate_messages, validate_sampler_params
from harmony_chat.generate import ContinuationOrchestrator, EchoDevEngine, InferenceEngine, ModelRuntime, StreamEvent
from harmony_chat.model_store import ModelStore

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# 🔧 Inference backend selection
# ------------------------------------------------------------
def build_engine(cfg: Settings) -> InferenceEngine:
    if cfg.INFERENCE_BACKEND == "echo":
        return EchoDevEngine(context_size=cfg.CONTEXT_SIZE_CAP)
    from harmony_chat.generate.clients.llama_cpp_client import LlamaCppEngine
    return LlamaCppEngine(context_size_cap=cfg.CONTEXT_SIZE_CAP, n_gpu_layers=cfg.N_GPU_LAYERS)


engine = build_engine(settings)
runtime = ModelRuntime(engine, sequences=settings.SEQUENCES, log_tokens=settings.LOG_TOKENS)
orchestrator = ContinuationOrchestrator(runtime)
model_store = ModelStore(settings.MODEL_CACHE_DIR, settings.MODEL_NAME)


async def prepare_model() -> Optional[JSONResponse]:
    """Load + warm the model once. Returns an error response when no model file exists."""
    model_path = ""
    if engine.requires_model_file:
        status = await asyncio.to_thread(model_store.get_status)
        if not status.present:
            logger.error("Model not downloaded")
            return JSONResponse(status_code=503, content={"error": "Model not downloaded"})
        model_path = model_store.get_model_path()
    await runtime.ensure_ready(model_path)
    return None

# ------------------------------------------------------------
# 🚀 FastAPI init
# ------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s (env=%s, backend=%s)", settings.APP_NAME, settings.ENV, settings.INFERENCE_BACKEND)
    logger.info("MODEL_URL: %s", "Configured" if settings.MODEL_URL else "NOT CONFIGURED")
    if settings.PRELOAD_MODEL:
        await prepare_model()
    yield
    logger.info("Shutting down...")
    runtime.close()


app = FastAPI(title="Harmony Chat API", version="0.1", lifespan=lifespan)

# ------------------------------------------------------------
# 📦 Pydantic models
# ------------------------------------------------------------
class ChatStreamRequest(BaseModel):
    # shape is checked by the validation gate, not by pydantic
    messages: Any = None
    params: Any = None


def sse(event: StreamEvent) -> str:
    return f"data: {json.dumps(event.to_json())}\n\n"

# ------------------------------------------------------------
# 💬 Chat routes
# ------------------------------------------------------------
@app.post("/chat/stream")
async def chat_stream(req: ChatStreamRequest):
    logger.info("Received chat request")
    try:
        messages = validate_messages(req.messages)
        params = validate_sampler_params(req.params)
    except MessageValidationError as e:
        logger.warning("Validation error: %s", e)
        return JSONResponse(status_code=400, content={"error": str(e)})

    mode = ReasoningMode.parse(req.params.get("reasoningMode") if isinstance(req.params, dict) else None)
    logger.debug("Messages: %d, params: %s, mode: %s", len(messages), params, mode.value)

    try:
        not_ready = await prepare_model()
    except Exception as e:
        logger.exception("Model load failed")
        raise HTTPException(status_code=500, detail=str(e))
    if not_ready is not None:
        return not_ready

    async def events():
        async with aclosing(orchestrator.stream(messages, params, mode)) as stream:
            async for event in stream:
                yield sse(event)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.post("/chat/stop")
async def chat_stop():
    runtime.stop()
    return {"message": "Chat stopped"}


@app.get("/chat/context")
def chat_context():
    return {"contextSize": runtime.context_size, "ready": runtime.is_ready()}

# ------------------------------------------------------------
# 📥 Model artifact routes
# ------------------------------------------------------------
def _download_model(url: str, sha256: Optional[str]) -> None:
    try:
        model_store.download(url, sha256)
    except ModelStoreError as e:
        logger.error("Model download failed: %s", e)


@app.get("/model/status")
def model_status():
    return model_store.get_status(settings.MODEL_SHA256).to_json()


@app.post("/model/download")
def model_download(background_tasks: BackgroundTasks):
    if not settings.MODEL_URL:
        logger.error("MODEL_URL not configured")
        return JSONResponse(status_code=400, content={"error": "MODEL_URL not configured"})
    logger.info("Starting model download from %s", settings.MODEL_URL)
    background_tasks.add_task(_download_model, settings.MODEL_URL, settings.MODEL_SHA256)
    return {"message": "Download started"}


@app.get("/model/progress")
def model_progress():
    progress = model_store.get_current_progress()
    return {"progress": progress.to_json() if progress else None}


@app.post("/model/cancel")
def model_cancel():
    model_store.cancel_download()
    model_store.cleanup_partial_download()
    return {"message": "Download cancelled"}

# ------------------------------------------------------------
# 🧭 Health checks
# ------------------------------------------------------------
@app.get("/healthz")
def healthz():
    return {
        "ok": True,
        "env": settings.ENV,
        "debug": settings.DEBUG,
        "app": settings.app_name,
        "ready": runtime.is_ready(),
    }


@app.get("/health")
def health():
    return {"status": "ok", "env": settings.ENV}


@app.get("/")
def hello():
    return {"message": "Harmony Chat service running."}
