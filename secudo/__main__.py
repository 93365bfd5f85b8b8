"""Run the Secudo server: python3 -m secudo"""

import uvicorn

from secudo.config import settings


def main() -> None:
    uvicorn.run("secudo.api.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
