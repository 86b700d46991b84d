from __future__ import annotations

import asyncio
import logging

import uvicorn

from ..integration import MindScribeService
from ..settings import settings
from .app import create_app


async def _main() -> None:
    logging.basicConfig(level=(settings.log_level or "INFO"))

    service = MindScribeService.from_settings(settings)
    await service.start()
    app = create_app(service, settings)

    config = uvicorn.Config(
        app,
        host=settings.bind_host,
        port=settings.bind_port,
        log_level=(settings.log_level or "info").lower(),
    )
    server = uvicorn.Server(config)

    try:
        await server.serve()
    finally:
        await service.close()


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
