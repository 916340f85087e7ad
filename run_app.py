#!/usr/bin/env python3
"""
Chemistry Grader Application Runner
Minimal startup script for the Flask API.
"""

from chemgrader.config.unified_config import config
from utils.logger import logger
from webapp.app_factory import create_app

app = create_app()


def main():
    logger.info(f"Starting Chemistry Grader API on http://{config.server.host}:{config.server.port}")
    app.run(
        host=config.server.host,
        port=config.server.port,
        debug=config.server.debug,
        use_reloader=False,
        threaded=True,
    )


if __name__ == "__main__":
    main()
