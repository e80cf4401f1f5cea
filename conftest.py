"""
Shared pytest fixtures.

Settings are read at import time, so the environment is pinned before any
application module is imported.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")

import io
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.exceptions import RenderFailed
from app.database.database import Base, enable_sqlite_foreign_keys, get_db
from app.dependencies.ownerDependencies import get_renderer
from app.modules.contacts.models import Client
from app.modules.documents.schemas import LineItemCreate
from app.modules.files.service import ArtifactStore, get_artifact_store
from app.modules.invoices.schemas import InvoiceCreate
from app.modules.items.models import Item
from app.modules.projects.models import Project
from app.modules.users.models import User


# ===== FAKE OBJECT STORE =====

def client_error(code: str, operation: str, http_status: int = 404) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": http_status}},
        operation,
    )


class FakeBody:
    def __init__(self, data: bytes):
        self._stream = io.BytesIO(data)
        self.closed = False

    def read(self):
        return self._stream.read()

    def close(self):
        self.closed = True


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client with fault injection"""

    def __init__(self):
        self.buckets = set()
        self.objects = {}
        self.unavailable = False
        self.fail_puts = False
        self.fail_all_deletes = False
        self.fail_delete_keys = set()
        self.deleted_keys = []

    def _check_connection(self):
        if self.unavailable:
            raise EndpointConnectionError(endpoint_url="http://minio:9000")

    def head_bucket(self, Bucket):
        self._check_connection()
        if Bucket not in self.buckets:
            raise client_error("404", "HeadBucket")
        return {}

    def create_bucket(self, Bucket):
        self._check_connection()
        self.buckets.add(Bucket)
        return {}

    def put_object(self, Bucket, Key, Body, ContentLength, ContentType):
        self._check_connection()
        if self.fail_puts:
            raise client_error("InternalError", "PutObject", 500)
        self.objects[Key] = (Body.read(), ContentType)
        return {"ETag": '"fake"'}

    def get_object(self, Bucket, Key):
        self._check_connection()
        if Key not in self.objects:
            raise client_error("NoSuchKey", "GetObject")
        data, content_type = self.objects[Key]
        return {"Body": FakeBody(data), "ContentType": content_type, "ContentLength": len(data)}

    def head_object(self, Bucket, Key):
        self._check_connection()
        if Key not in self.objects:
            raise client_error("404", "HeadObject")
        data, content_type = self.objects[Key]
        return {"ContentType": content_type, "ContentLength": len(data)}

    def delete_object(self, Bucket, Key):
        self._check_connection()
        if self.fail_all_deletes or Key in self.fail_delete_keys:
            raise client_error("InternalError", "DeleteObject", 500)
        self.objects.pop(Key, None)
        self.deleted_keys.append(Key)
        return {}


class FakeRenderer:
    """Returns a tiny PDF-looking payload; fails for the listed counterparties"""

    def __init__(self):
        self.fail_for = set()
        self.rendered = []

    def render(self, document, line_items, owner, counterparty, logo=None):
        if counterparty.full_name in self.fail_for:
            raise RenderFailed(f"renderer failed for {counterparty.full_name}")
        self.rendered.append((document.number, counterparty.full_name, logo))
        return b"%PDF-1.4\n" + document.number.encode() + b"\n%%EOF"


# ===== DATABASE =====

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_s3():
    return FakeS3Client()


@pytest.fixture
def artifact_store(fake_s3):
    return ArtifactStore(client=fake_s3, bucket_name="test-bucket")


@pytest.fixture
def fake_renderer():
    return FakeRenderer()


# ===== SEED DATA =====

@pytest.fixture
def owner(db_session):
    user = User(
        full_name="Asha Rao",
        email="asha@example.com",
        mobile_number="+91 98765 43210",
        gstin="29ABCDE1234F1Z5",
        pan="ABCDE1234F",
        country="India",
        currency="INR",
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def other_owner(db_session):
    user = User(full_name="Other Owner", email="other@example.com")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def client_a(db_session, owner):
    client = Client(owner_id=owner.id, full_name="Acme Corp", email="billing@acme.example")
    db_session.add(client)
    db_session.commit()
    return client


@pytest.fixture
def client_b(db_session, owner):
    client = Client(owner_id=owner.id, full_name="Globex Ltd", email="accounts@globex.example")
    db_session.add(client)
    db_session.commit()
    return client


@pytest.fixture
def project(db_session, owner, client_a, client_b):
    project = Project(owner_id=owner.id, name="Website redesign")
    project.clients = [client_a, client_b]
    db_session.add(project)
    db_session.commit()
    return project


@pytest.fixture
def item(db_session, owner):
    item = Item(owner_id=owner.id, name="Design")
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture
def make_invoice_data(client_a, item):
    """Builder for InvoiceCreate with sensible defaults"""
    def _make(**overrides):
        data = dict(
            client_id=client_a.id,
            invoice_date=date.today(),
            due_date=date.today() + timedelta(days=15),
            items=[LineItemCreate(item_id=item.id, quantity=Decimal("2"), unit_price=Decimal("500.00"))],
        )
        data.update(overrides)
        return InvoiceCreate(**data)
    return _make


# ===== API =====

@pytest.fixture
def queued_emails(monkeypatch):
    """Captures email tasks instead of sending them to the broker"""
    sent = []

    def delay(**kwargs):
        sent.append(kwargs)
        return SimpleNamespace(id=f"task-{len(sent)}")

    monkeypatch.setattr(
        "app.modules.invoices.service.send_document_email_task",
        SimpleNamespace(delay=delay),
    )
    return sent


@pytest.fixture
def api_client(db_session, artifact_store, fake_renderer):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_artifact_store] = lambda: artifact_store
    app.dependency_overrides[get_renderer] = lambda: fake_renderer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
