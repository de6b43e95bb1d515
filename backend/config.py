"""
SmartSpec configuration
Environment-driven settings, loaded once at startup from backend/.env and the process env.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent


def _float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value not in (None, "") else default


def _int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


@dataclass
class Settings:
    database_url: str = ""

    # LLM
    llm_provider: str = "openai"
    llm_api_key: str = ""
    llm_model: Optional[str] = None
    llm_base_url: Optional[str] = None
    llm_temperature: float = 0.7
    generation_timeout: float = 120.0

    # Vector index
    vector_backend: str = "qdrant"
    qdrant_url: Optional[str] = None
    qdrant_api_key: Optional[str] = None
    qdrant_collection: str = "initiatives"
    openai_api_key: str = ""
    embedding_model: str = "text-embedding-3-small"
    retrieval_timeout: float = 10.0
    index_timeout: float = 10.0
    similar_initiatives_limit: int = 3

    # Runtime
    log_level: str = "INFO"
    log_format: str = "json"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    metrics_prefix: str = "smartspec_"


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Read Settings from the environment after loading the .env file (existing vars win)"""
    load_dotenv(env_file or ROOT_DIR / '.env')

    openai_api_key = os.environ.get('OPENAI_API_KEY', '')
    return Settings(
        database_url=os.environ.get('DATABASE_URL', ''),
        llm_provider=os.environ.get('LLM_PROVIDER', 'openai').lower(),
        llm_api_key=os.environ.get('LLM_API_KEY') or openai_api_key,
        llm_model=os.environ.get('LLM_MODEL') or None,
        llm_base_url=os.environ.get('LLM_BASE_URL') or None,
        llm_temperature=_float('LLM_TEMPERATURE', 0.7),
        generation_timeout=_float('GENERATION_TIMEOUT_SECONDS', 120.0),
        vector_backend=os.environ.get('VECTOR_BACKEND', 'qdrant').lower(),
        qdrant_url=os.environ.get('QDRANT_URL') or None,
        qdrant_api_key=os.environ.get('QDRANT_API_KEY') or None,
        qdrant_collection=os.environ.get('QDRANT_COLLECTION', 'initiatives'),
        openai_api_key=openai_api_key,
        embedding_model=os.environ.get('EMBEDDING_MODEL', 'text-embedding-3-small'),
        retrieval_timeout=_float('RETRIEVAL_TIMEOUT_SECONDS', 10.0),
        index_timeout=_float('INDEX_TIMEOUT_SECONDS', 10.0),
        similar_initiatives_limit=_int('SIMILAR_INITIATIVES_LIMIT', 3),
        log_level=os.environ.get('LOG_LEVEL', 'INFO'),
        log_format=os.environ.get('LOG_FORMAT', 'json').lower(),
        cors_origins=[o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()],
        metrics_prefix=os.environ.get('METRICS_PREFIX', 'smartspec_'),
    )
