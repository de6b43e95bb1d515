#!/usr/bin/env python3
"""
SmartSpec Sample Data Loader

Seeds the vector index with historical initiatives so that new
breakdowns have similar past work to draw on.

Usage:
    python scripts/load_sample_data.py [--backend qdrant]
"""
import argparse
import asyncio
import logging
import os
import sys
from typing import Any, Dict, List

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import load_settings
from server import build_index
from services.logging_service import setup_logging
from services.vector_service import QdrantVectorService

logger = logging.getLogger("smartspec.scripts.load_sample_data")


SAMPLE_INITIATIVES: List[Dict[str, Any]] = [
    {
        "id": "sample_1",
        "title": "Implement AI-Powered Customer Support",
        "description": (
            "Develop and integrate an AI chatbot system to handle first-line customer support "
            "inquiries, reducing response time and improving customer satisfaction."
        ),
        "category": "Customer Experience",
        "priority": "High",
        "status": "Planning",
        "metadata": {
            "estimatedBudget": 50000,
            "expectedROI": "30%",
            "stakeholders": ["Customer Support", "IT", "Product"],
        },
    },
    {
        "id": "sample_2",
        "title": "Mobile App Redesign",
        "description": (
            "Modernize our mobile application with a new UI/UX design, focusing on improved "
            "navigation, accessibility, and performance optimizations."
        ),
        "category": "Product Development",
        "priority": "High",
        "status": "In Progress",
        "metadata": {
            "platform": ["iOS", "Android"],
            "targetCompletion": "2024-Q3",
            "dependencies": ["Design System Update", "API Modernization"],
        },
    },
    {
        "id": "sample_3",
        "title": "Data Analytics Platform Enhancement",
        "description": (
            "Upgrade our analytics infrastructure to handle real-time data processing and "
            "implement advanced visualization capabilities for better business insights."
        ),
        "category": "Analytics",
        "priority": "Medium",
        "status": "Planning",
        "metadata": {
            "tools": ["Tableau", "BigQuery", "Apache Kafka"],
            "dataVolume": "5TB/day",
            "stakeholders": ["Data Science", "Business Intelligence", "Engineering"],
        },
    },
]


async def load_initiatives(index, initiatives: List[Dict[str, Any]]) -> int:
    """Upsert each initiative keyed by its id; returns the number loaded"""
    if isinstance(index, QdrantVectorService):
        await index.ensure_collection()

    for initiative in initiatives:
        text = f"{initiative['title']}\n{initiative['description']}"
        await index.upsert(initiative["id"], text, dict(initiative))
        logger.info(f"Loaded initiative {initiative['id']}: {initiative['title']}")

    return len(initiatives)


def main(argv=None):
    """Main entry point for CLI usage."""
    parser = argparse.ArgumentParser(description="SmartSpec Sample Data Loader")
    parser.add_argument(
        "--backend",
        choices=["qdrant"],
        default=None,
        help="Vector backend (defaults to VECTOR_BACKEND)"
    )
    args = parser.parse_args(argv)

    settings = load_settings()
    if args.backend:
        settings.vector_backend = args.backend
    # The in-memory index lives only as long as this process
    if settings.vector_backend != "qdrant":
        parser.error(f"cannot seed the '{settings.vector_backend}' backend; set VECTOR_BACKEND=qdrant")
    setup_logging(level=settings.log_level, json_format=False)

    index = build_index(settings)
    count = asyncio.run(load_initiatives(index, SAMPLE_INITIATIVES))
    logger.info(f"Successfully loaded {count} sample initiatives")


if __name__ == "__main__":
    main()
