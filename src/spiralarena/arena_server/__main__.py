#!/usr/bin/env python3
"""Entry point for running the Spiral Arena server.

Run with: uv run -m spiralarena.arena_server
"""

import os

import uvicorn

from spiralarena.arena_server.server import app

if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)
