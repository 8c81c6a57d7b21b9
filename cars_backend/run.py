#!/usr/bin/env python3
"""
Quick runner for the CARS-G API Server
======================================

Usage:
    python -m cars_backend.run
"""

import os

import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", "3001"))
    print("Starting CARS-G API Server...")
    print(f"API docs: http://localhost:{port}/docs")
    print(f"Health:   http://localhost:{port}/health")
    print()

    uvicorn.run(
        "cars_backend.api:app",
        host="0.0.0.0",
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
