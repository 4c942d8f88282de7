import uvicorn

from solo_leveling.core.app import create_app
from solo_leveling.core.config import get_settings

app = create_app()


def run() -> None:
    """Entrypoint for `solo-leveling-api` script."""
    settings = get_settings()
    uvicorn.run(
        "solo_leveling.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        factory=False,
    )


if __name__ == "__main__":
    run()
