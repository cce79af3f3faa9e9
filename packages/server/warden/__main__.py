"""Run the API server: ``python -m warden``."""

import uvicorn

from warden.core.config import get_settings
from warden.main import create_app


def main() -> None:
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
