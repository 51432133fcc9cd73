from __future__ import annotations

import os

from aiohttp import web
from dotenv import load_dotenv

from launchpad.service import AppSettings, build_application, setup_logger
from launchpad.storage import StorageSettings


def main() -> None:
    load_dotenv()
    logger = setup_logger(os.getenv("LOG_LEVEL", "INFO"))
    app_settings = AppSettings.from_env()
    storage_settings = StorageSettings.from_env()

    web.run_app(
        build_application(
            logger=logger,
            app_settings=app_settings,
            storage_settings=storage_settings,
        ),
        host=app_settings.http_host,
        port=app_settings.http_port,
        print=None,
    )


if __name__ == "__main__":
    main()
