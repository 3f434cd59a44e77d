"""Run the gateway with uvicorn."""

from __future__ import annotations

import uvicorn

from cab_gateway.config import settings


def main() -> None:
    uvicorn.run(
        "cab_gateway.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    main()
