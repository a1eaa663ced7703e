#!/usr/bin/env python
"""Quick server runner."""
import uvicorn

from lualink.config import load_settings

if __name__ == "__main__":
    settings = load_settings()
    uvicorn.run("lualink.web.app:app", host=settings.host, port=settings.port)
