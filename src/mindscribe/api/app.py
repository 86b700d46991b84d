from __future__ import annotations

import os

from fastapi import FastAPI

from ..integration import MindScribeService
from ..settings import MindScribeSettings
from .graph_api import build_graph_router


def create_app(service: MindScribeService, s: MindScribeSettings | None = None) -> FastAPI:
    app = FastAPI(title="MindScribe - Content Graph", version="0.1.0")

    @app.get("/health")
    async def health():
        return {
            "ok": True,
            "host": os.uname().nodename,
            "initialized": service.manager.is_initialized,
        }

    app.include_router(build_graph_router(service, s))
    return app
