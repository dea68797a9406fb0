"""Main entrypoint for running the marketplace payments API with Uvicorn."""

from marketplace.core.settings import get_settings
from marketplace.main import app

__all__ = ["app"]


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("marketplace.main:app", host=settings.server_host, port=settings.server_port, reload=True)
