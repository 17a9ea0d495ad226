# backend/tests/conftest.py
import os
import sys
import pytest
from fastapi.testclient import TestClient

# Make /Project/backend importable as top-level
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

# Built-in tables only, whatever the local .env says
os.environ["REFERENCE_PRESET"] = "sample"
os.environ["DEFAULT_GRANULARITY"] = "MONTHLY"

# Import app only after setting env
from main import app
from data_toy import toy_repository, toy_tables


@pytest.fixture(scope="session")
def client():
    # Use context manager so FastAPI lifespan (startup/shutdown) runs
    with TestClient(app) as c:
        # lifespan installs an empty store; swap in the toy fleet
        app.state.repository = toy_repository()
        yield c


@pytest.fixture
def tables():
    return toy_tables()
