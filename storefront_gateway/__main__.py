import logging

import uvicorn

from storefront_gateway.core.config import settings


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    uvicorn.run("storefront_gateway.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
