import pytest

from services.analytics_service import AnalyticsService
from services.initiative_service import InitiativeService
from services.metrics_service import InitiativeMetrics
from services.retrieval_service import HistoricalRetriever
from services.task_generator import TaskGenerator
from tests.fakes import FixedClock, InMemoryInitiativeRepository, ScriptedIndex, ScriptedLLM


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def repository():
    return InMemoryInitiativeRepository()


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def index():
    return ScriptedIndex()


@pytest.fixture
def metrics():
    return InitiativeMetrics()


@pytest.fixture
def generator(llm, index, metrics):
    return TaskGenerator(llm, HistoricalRetriever(index, timeout=1.0), timeout=5.0, metrics=metrics)


@pytest.fixture
def service(repository, generator, index, clock, metrics):
    return InitiativeService(repository, generator, index, clock=clock, index_timeout=1.0, metrics=metrics)


@pytest.fixture
def analytics(repository, clock):
    return AnalyticsService(repository, clock=clock)
