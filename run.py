#!/usr/bin/env python3
"""
Run script for the Voice Agent Backend
"""
import uvicorn

from voice_agent.config.settings import settings

if __name__ == "__main__":
    uvicorn.run(
        "voice_agent.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
