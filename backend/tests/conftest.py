from datetime import datetime, timedelta, timezone

import jwt
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from opsafe.core.config import settings
from opsafe.db.mongo import get_db
from opsafe.main import app


def make_token(organization_id, role='admin', expires_in=timedelta(hours=1), **claims):
    payload = {
        'sub': 'test-user-id',
        'organization_id': organization_id,
        'role': role,
        'exp': datetime.now(timezone.utc) + expires_in,
        **claims,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def db():
    return AsyncMongoMockClient()['opsafe_test']


@pytest.fixture
def org_id():
    return str(ObjectId())


@pytest.fixture
def client(db):
    async def override_get_db():
        return db

    app.dependency_overrides[get_db] = override_get_db
    # Not used as a context manager: the lifespan would connect to a real MongoDB
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(org_id):
    return {'Authorization': f'Bearer {make_token(org_id)}'}
