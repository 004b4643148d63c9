#!/usr/bin/env python3
"""
Convenience script to run the Polaris server.
"""
import uvicorn
from polaris.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "polaris.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower()
    )
