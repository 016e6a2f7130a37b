#!/usr/bin/env python
"""
Run the booking API without Docker.

Run: python run_api.py

Then open browser: http://localhost:8000/docs

Booking writes are serialized per instructor / student inside one process,
so keep workers=1.
"""
import uvicorn

from lessonbook.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "lessonbook.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        workers=1,
        log_level=settings.LOG_LEVEL.lower()
    )
