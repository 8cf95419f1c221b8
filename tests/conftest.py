import sys
from pathlib import Path

# Ajoute la racine du projet au PYTHONPATH EN PREMIER
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Créer engine SQLite pour tests AVANT d'importer app
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///./test.db"
test_engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

# PATCH: remplacer le engine et SessionLocal du core.database AVANT d'importer app
import tasktree.core.database
tasktree.core.database.engine = test_engine
tasktree.core.database.SessionLocal = TestingSessionLocal

# Maintenant importer app (qui utilisera notre engine SQLite)
from tasktree.core.database import Base, get_db
from tasktree.main import app
from tasktree.services import task_service

NOW = datetime(2026, 3, 10, 9, 0, 0)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture(autouse=True)
def setup_teardown():
    """Crée et nettoie la DB avant/après chaque test"""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)

# Override la dépendance
app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client():
    """Client de test FastAPI"""
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def db():
    """Session DB pour les tests"""
    db = TestingSessionLocal()
    yield db
    db.close()


@pytest.fixture
def tree(db):
    """
    R
    ├── S1
    └── S2
        └── S2a
    Retourne les ids.
    """
    r = task_service.create_task(db, "R", due_date=datetime(2026, 3, 12), now=NOW)
    s1 = task_service.create_task(db, "S1", parent_id=r.id, now=NOW)
    s2 = task_service.create_task(db, "S2", parent_id=r.id, now=NOW)
    s2a = task_service.create_task(db, "S2a", parent_id=s2.id, now=NOW)
    return {"R": r.id, "S1": s1.id, "S2": s2.id, "S2a": s2a.id}
