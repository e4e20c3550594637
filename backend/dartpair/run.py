from __future__ import annotations

import uvicorn

from dartpair.config import ServerConfig


def main() -> None:
    config = ServerConfig.from_env()
    uvicorn.run("dartpair.main:app", host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
