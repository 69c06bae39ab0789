"""Arranca la API HTTP con uvicorn: ``python -m sdkdocs``."""

from __future__ import annotations

from sdkdocs.config import get_settings


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sdkdocs.api.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
    )


if __name__ == "__main__":
    main()
