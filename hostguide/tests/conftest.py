"""Shared fixtures: moto-mocked images bucket, both store adapters and TestClients
for the API app and the get-image function."""

import os
import tempfile

# Before any hostguide import: config is read at import time.
os.environ.setdefault("API_ENV", "dev")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
os.environ.setdefault("AWS_SESSION_TOKEN", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ["HOSTGUIDE_STORE"] = "local"
os.environ["HOSTGUIDE_LOCAL_STORE_PATH"] = os.path.join(tempfile.mkdtemp(prefix="hostguide-"), "store.json")

import boto3
import pytest
from moto import mock_aws
from starlette.testclient import TestClient

from hostguide import config
from hostguide.backends.local import LocalBackend
from hostguide.backends.sql import SqlBackend
from hostguide.client.image_resolver import SignedUrlResolver

BUCKET = config.IMAGES_BUCKET
PREFIX = config.STORAGE_URL_PREFIX

OWNER_A = {"id": "user-aaaa", "email": "a@example.com"}
OWNER_B = {"id": "user-bbbb", "email": "b@example.com"}

IMAGE_A = f"{OWNER_A['id']}/beach.png"
IMAGE_B = f"{OWNER_B['id']}/cabin.jpg"

_DUMMY_PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64  # minimal fake PNG bytes


@pytest.fixture(scope="session")
def _mock_aws_session():
    """Session-wide moto mock; keeps the fake images bucket alive for all tests."""
    with mock_aws():
        s3 = boto3.client("s3", region_name="us-east-1")
        s3.create_bucket(Bucket=BUCKET)
        s3.put_object(Bucket=BUCKET, Key=IMAGE_A, Body=_DUMMY_PNG)
        s3.put_object(Bucket=BUCKET, Key=IMAGE_B, Body=_DUMMY_PNG)
        yield s3


@pytest.fixture(params=["local", "sql"])
def backend(request, tmp_path):
    """Each store adapter in turn; both must behave the same."""
    if request.param == "local":
        b = LocalBackend(tmp_path / "store.json")
    else:
        b = SqlBackend("sqlite://")
    yield b
    b.close()


class _CurrentUser:
    """Mutable stand-in for the auth dependency so a test can switch owners."""

    def __init__(self):
        self.user = OWNER_A

    def __call__(self):
        return self.user


@pytest.fixture
def current_user():
    return _CurrentUser()


@pytest.fixture
def issuer_client(_mock_aws_session, backend):
    """TestClient for the get-image function, reading spaces from ``backend``."""
    from hostguide.functions import get_image

    get_image.app.dependency_overrides[get_image.get_backend] = lambda: backend
    with TestClient(get_image.app) as c:
        yield c
    get_image.app.dependency_overrides.pop(get_image.get_backend, None)


@pytest.fixture
def resolver(issuer_client):
    """Resolver that talks to the in-process get-image function."""
    return SignedUrlResolver("http://testserver/", PREFIX, http_client=issuer_client)


@pytest.fixture
def client(_mock_aws_session, backend, current_user, resolver):
    """API TestClient with mocked S3 and auth bypassed.

    ``get_current_user`` returns ``current_user.user`` (OWNER_A unless a test
    switches it) so tests don't need a real auth service.
    """
    from hostguide.api import get_backend, get_resolver
    from hostguide.api.auth import get_current_user
    from hostguide.api.main import app

    app.dependency_overrides[get_current_user] = current_user
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_resolver] = lambda: resolver
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
