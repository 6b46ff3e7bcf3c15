"""
Module: server.py
Purpose: Server entry point for the mock test API.
         Runs the FastAPI app from api.py with uvicorn.
"""

import os

import uvicorn

if __name__ == "__main__":
    # Run with: python server.py
    uvicorn.run(
        "api:app",
        host=os.getenv("PYQ_HOST", "0.0.0.0"),
        port=int(os.getenv("PYQ_PORT", "8000")),
        reload=os.getenv("PYQ_RELOAD", "false").lower() == "true",
    )
