from __future__ import annotations

import asyncio

from soboss.app import SoBossApp
from soboss.config import AppSettings
from soboss.core.logging import configure_logging


def main() -> int:
    settings = AppSettings()
    configure_logging(settings.log_level)
    app = SoBossApp(settings)
    asyncio.run(app.run())
    return 0
