import asyncio
import sys

from server.bootstrap import Bootstrap
from server.core.config import load_settings


def main() -> int:
    settings = load_settings()
    bootstrap = Bootstrap(settings)
    return asyncio.run(bootstrap.run())


if __name__ == '__main__':
    sys.exit(main())
