from fastapi import FastAPI, APIRouter, Request, Response
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from dataclasses import dataclass
from typing import Optional, Any
from pathlib import Path
import logging

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from config import Settings, load_settings
from db.database import create_engine, create_session_factory
from services.analytics_service import AnalyticsService
from services.initiative_repository import InitiativeRepository
from services.initiative_service import InitiativeService
from services.llm_service import LLMService
from services.logging_service import RequestLoggingMiddleware, setup_logging
from services.metrics_service import InitiativeMetrics
from services.rate_limit import limiter, rate_limit_exceeded_handler
from services.retrieval_service import HistoricalRetriever
from services.task_generator import TaskGenerator
from services.vector_service import (
    InMemoryVectorService, OpenAIEmbeddingService, QdrantVectorService
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Every collaborator the routes need, built once per application"""
    initiatives: InitiativeService
    analytics: AnalyticsService
    generator: TaskGenerator
    metrics: InitiativeMetrics
    index: Any = None
    engine: Any = None


def build_index(settings: Settings):
    if settings.vector_backend == "memory":
        return InMemoryVectorService()
    if settings.vector_backend != "qdrant":
        raise RuntimeError(f"Unsupported VECTOR_BACKEND: {settings.vector_backend}")
    if not settings.qdrant_url:
        raise RuntimeError("Vector index not configured. Set QDRANT_URL or VECTOR_BACKEND=memory.")

    embedder = OpenAIEmbeddingService(
        api_key=settings.openai_api_key or settings.llm_api_key,
        model=settings.embedding_model,
        timeout=settings.retrieval_timeout
    )
    return QdrantVectorService(
        url=settings.qdrant_url,
        embedder=embedder,
        api_key=settings.qdrant_api_key,
        collection=settings.qdrant_collection,
        timeout=settings.retrieval_timeout
    )


def build_services(settings: Settings) -> ServiceContainer:
    """Wire the production collaborators from settings"""
    metrics = InitiativeMetrics(prefix=settings.metrics_prefix)

    engine = create_engine(settings.database_url)
    repository = InitiativeRepository(create_session_factory(engine))
    index = build_index(settings)

    llm = LLMService(
        provider=settings.llm_provider,
        api_key=settings.llm_api_key,
        model_name=settings.llm_model,
        base_url=settings.llm_base_url,
        temperature=settings.llm_temperature,
        timeout=settings.generation_timeout
    )
    generator = TaskGenerator(
        llm,
        HistoricalRetriever(index, timeout=settings.retrieval_timeout),
        similar_limit=settings.similar_initiatives_limit,
        timeout=settings.generation_timeout,
        metrics=metrics
    )
    initiatives = InitiativeService(
        repository,
        generator,
        index,
        index_timeout=settings.index_timeout,
        metrics=metrics
    )

    return ServiceContainer(
        initiatives=initiatives,
        analytics=AnalyticsService(repository),
        generator=generator,
        metrics=metrics,
        index=index,
        engine=engine,
    )


def create_app(container: Optional[ServiceContainer] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API. With no container, production services are wired at startup,
    so importing this module never touches the database.
    """
    settings = settings or load_settings()

    app = FastAPI(
        title="SmartSpec API",
        description="Turns business initiatives into reviewed, versioned Jira task breakdowns",
        version="1.0.0"
    )
    app.state.services = container
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Create a router with the /api prefix
    api_router = APIRouter(prefix="/api")

    from routes.analytics import router as analytics_router
    from routes.initiatives import router as initiatives_router

    # Analytics first so /initiatives/analytics/* never reaches /initiatives/{id}
    api_router.include_router(analytics_router)
    api_router.include_router(initiatives_router)

    @api_router.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "smartspec"}

    app.include_router(api_router)

    @app.get("/metrics", include_in_schema=False)
    async def prometheus_metrics(request: Request):
        metrics = request.app.state.services.metrics
        return Response(content=metrics.export(), media_type=metrics.content_type)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    @app.on_event("startup")
    async def startup_event():
        setup_logging(level=settings.log_level, json_format=settings.log_format == "json")
        logger.info("Starting SmartSpec API...")

        if app.state.services is None:
            app.state.services = build_services(settings)

        index = app.state.services.index
        if isinstance(index, QdrantVectorService):
            try:
                await index.ensure_collection()
            except Exception as e:
                # Retrieval degrades to no context until Qdrant is reachable
                logger.warning(f"Could not ensure Qdrant collection: {e}")

        logger.info("SmartSpec API started successfully")

    @app.on_event("shutdown")
    async def shutdown_event():
        services = app.state.services
        if services is not None and services.engine is not None:
            await services.engine.dispose()
        logger.info("SmartSpec API shutdown complete")

    return app


app = create_app()
