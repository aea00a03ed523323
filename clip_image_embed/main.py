import os
import base64
import binascii
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request

from .embedder import ClipImageEmbedder
from .errors import DecodeError, InferenceError, ShapeMismatch
from .metrics import EMBED_LATENCY, ERRORS_TOTAL, REQ_TOTAL, metrics_response
from .schemas import EmbedRequest, EmbedResponse, HealthzResponse

logger = logging.getLogger(__name__)


def _check_auth(api_key: str, authorization: Optional[str]):
    # Expect: "Bearer <API_KEY>"
    if not api_key:
        return
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    if token != api_key:
        raise HTTPException(status_code=403, detail="Invalid API key")


def _decode_b64(s: str) -> bytes:
    s = s.strip()
    if s.startswith("data:"):
        s = s.split(",", 1)[1] if "," in s else ""
    try:
        return base64.b64decode(s, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64 image payload: {e}") from e


def create_app(
    embedder: Optional[ClipImageEmbedder] = None,
    api_key: Optional[str] = None,
    served_model_name: Optional[str] = None,
) -> FastAPI:
    api_key = os.getenv("API_KEY", "") if api_key is None else api_key
    served_model_name = served_model_name or os.getenv("SERVED_MODEL_NAME", "").strip() or None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = embedder is None
        app.state.embedder = ClipImageEmbedder.from_env() if owned else embedder
        try:
            yield
        finally:
            if owned:
                app.state.embedder.close()

    app = FastAPI(title="orttrt-clip-image", version="0.1.0", lifespan=lifespan)

    def _model_name(emb: ClipImageEmbedder) -> str:
        return served_model_name or emb.model_id

    @app.get("/healthz", response_model=HealthzResponse)
    def healthz(request: Request):
        emb = request.app.state.embedder
        return HealthzResponse(
            ok=True,
            model=_model_name(emb),
            provider=emb.provider,
            input_name=emb.binding.name,
            image_size=emb.binding.image_size,
            profile=emb.profile.name,
            output=emb.selector.describe(),
        )

    @app.post("/embed", response_model=EmbedResponse)
    def embed(req: EmbedRequest, request: Request, authorization: Optional[str] = Header(default=None)):
        _check_auth(api_key, authorization)
        REQ_TOTAL.inc()

        emb = request.app.state.embedder
        model = _model_name(emb)
        if req.model and req.model != model:
            raise HTTPException(status_code=400, detail=f"Unknown model '{req.model}'. This service serves '{model}'.")

        try:
            raw = _decode_b64(req.image_b64)
            with EMBED_LATENCY.time():
                vec = emb.embed(raw, norm=req.norm)
        except DecodeError as e:
            ERRORS_TOTAL.labels(stage=e.stage).inc()
            raise HTTPException(status_code=400, detail=str(e))
        except ShapeMismatch as e:
            ERRORS_TOTAL.labels(stage=e.stage).inc()
            logger.error(f"Internal shape check failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        except InferenceError as e:
            ERRORS_TOTAL.labels(stage=e.stage).inc()
            raise HTTPException(status_code=502, detail=str(e))

        return EmbedResponse(
            model=model,
            dim=int(vec.shape[0]),
            norm=emb.norm if req.norm is None else bool(req.norm),
            embedding=vec.astype(float).tolist(),
        )

    @app.get("/metrics")
    def metrics():
        return metrics_response()

    return app


# uvicorn clip_image_embed.main:app
app = create_app()
