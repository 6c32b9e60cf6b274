from __future__ import annotations

from fastapi import FastAPI

from recovery_kernel.core.config import ENGINE_LOG_FILE, ENGINE_LOG_LEVEL
from recovery_kernel.core.observability import setup_logging
from recovery_kernel.router.engine_router import router as engine_router

# =========================
# FastAPI app
# =========================


def create_app() -> FastAPI:
    setup_logging(ENGINE_LOG_LEVEL, ENGINE_LOG_FILE)
    app = FastAPI(title="Guardian Recovery Kernel")
    app.include_router(engine_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000, log_level="info")
