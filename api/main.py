# api/main.py
import logging
import os
import time

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from api.config import AppConfig
from config.settings import get_settings
from schemas.locations import HealthStatus, InferenceReport, InferRequest
from services.errors import InferenceError
from services.location_inference import LocationInferrer

APP_TITLE = "Policy Location Inference API"
APP_VERSION = "1.0.0"

logger = logging.getLogger(__name__)

app = FastAPI(title=APP_TITLE, version=APP_VERSION)
config = AppConfig.load()
settings = get_settings()

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.allow_origins),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _inferrer() -> LocationInferrer:
    return LocationInferrer(settings.to_inference_config())


@app.get("/")
async def root():
    return {"message": APP_TITLE, "version": APP_VERSION, "docs_url": "/docs"}


@app.get("/health", response_model=HealthStatus)
@app.get("/api/health", response_model=HealthStatus)
async def health_check():
    return HealthStatus(
        status="ok",
        version=APP_VERSION,
        settings=settings.to_inference_config().model_dump(),
    )


@app.post("/api/infer", response_model=InferenceReport)
def infer(request: InferRequest):
    """Evaluate ``request.policy`` against ``request.document`` and return the inspected locations."""
    if len(request.policy.encode("utf-8")) > config.max_policy_kb * 1024:
        raise HTTPException(status_code=413, detail=f"policy exceeds {config.max_policy_kb} KB")

    started = time.time()
    try:
        report = _inferrer().infer_text(
            request.policy,
            request.document,
            query=request.query,
            document_name=request.filename,
        )
    except InferenceError as e:
        raise HTTPException(status_code=400, detail={"error": e.kind, "message": str(e)})

    logger.info(
        f"/api/infer {report.run_id}: {len(report.locations)} locations "
        f"in {(time.time() - started) * 1000:.1f}ms"
    )
    return report


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("API_PORT", str(config.port)))
    logger.info(f"starting {APP_TITLE} on port {port}")
    uvicorn.run(app, host=config.host, port=port, log_level="info")
