from __future__ import annotations

import logging

import uvicorn

from headsdown.core.config import get_settings


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    settings = get_settings()
    uvicorn.run(
        "headsdown.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.PORT,
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
