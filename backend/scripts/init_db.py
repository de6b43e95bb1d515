#!/usr/bin/env python3
"""
SmartSpec Database Initialization

Creates the initiative tables directly from the ORM models.
Prefer `alembic upgrade head` for managed environments.

Usage:
    python scripts/init_db.py
"""
import asyncio
import os
import sys

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import load_settings
from db.database import create_engine, init_db
from services.logging_service import setup_logging


async def run(database_url: str) -> None:
    engine = create_engine(database_url)
    try:
        await init_db(engine)
    finally:
        await engine.dispose()


def main():
    settings = load_settings()
    setup_logging(level=settings.log_level, json_format=False)
    asyncio.run(run(settings.database_url))


if __name__ == "__main__":
    main()
