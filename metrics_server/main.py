import sys

import uvicorn

from .app import create_app
from .config_loader import build_effective_config


def main() -> int:
    cfg = build_effective_config()
    app = create_app(settings=cfg)
    uvicorn.run(app, host=cfg.host, port=cfg.port, log_level="info")
    return 0


if __name__ == "__main__":
    sys.exit(main())
