"""
jyt_admin.api.__main__

Entrypoint for running the API via `python -m jyt_admin.api`.
"""

from __future__ import annotations

import uvicorn

from jyt_admin.api.app import create_app
from jyt_admin.settings import get_settings


def main() -> None:
    settings = get_settings()
    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,  # structlog
    )


if __name__ == "__main__":
    main()
