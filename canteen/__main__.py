"""
本地启动入口：python -m canteen
"""

import uvicorn

from .app import app
from .config.settings import settings

if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port)
