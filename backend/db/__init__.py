from .database import Base, create_engine, create_session_factory, convert_url_for_asyncpg, init_db
from .models import InitiativeProcess, InitiativeRevision
