"""Entry point: python -m feedserver"""

import uvicorn

from feedserver.core.config import settings


def main() -> None:
    uvicorn.run("feedserver.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
