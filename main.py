from __future__ import annotations

import uvicorn

from valuator.core.config import settings
from valuator.main import app  # noqa: F401


if __name__ == "__main__":
    uvicorn.run(
        "valuator.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
