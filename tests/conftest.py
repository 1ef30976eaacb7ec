import os
import re

# Keep the app's own engine off disk while tests import it
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.database as database
from app.config import settings
from app.database import Base
from app.exceptions import RemoteMutationError
from app.services.job_service import job_service
from app.services.pagination import Page
from app.services.resource_locator import PRODUCT_BY_SKU, STRATEGIES

SHOP = "test-shop.myshopify.com"

ROOT_FIELD = re.compile(r"\{\s*(\w+)\s*\(")
SEARCH_TAG = re.compile(r'tag:"([^"]+)"')


def _nest(path, value):
    for step in reversed(path):
        value = [value] if isinstance(step, int) else {step: value}
    return value


class FakeShopifyClient:
    """In-memory stand-in for ShopifyService that records every call."""

    shop_domain = SHOP

    def __init__(self):
        self.calls = []
        self.lookups = {}  # built search value -> gid
        self.tags = {}  # gid -> [tags]
        self.metafields = {}  # (gid, namespace, key) -> {id, type, value}
        self.owners = []
        self.total = None
        self.metaobjects = {}  # (type, handle) -> gid
        self.tag_pages = []
        self.definitions = []
        self.mutation_errors = {}  # gid -> user errors

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]

    # Lookup

    def execute(self, query, variables=None):
        value = (variables or {}).get("value")
        self.calls.append(("execute", value))
        gid = self.lookups.get(value)
        if gid is None:
            return {}

        root = ROOT_FIELD.search(query).group(1)
        if root == PRODUCT_BY_SKU.path[0] and "product {" in query:
            return _nest(PRODUCT_BY_SKU.path, gid)
        for strategy in STRATEGIES.values():
            if strategy.path[0] == root:
                return _nest(strategy.path, gid)
        return {}

    def get_shop_info(self):
        return {"email": "owner@test-shop.com", "myshopifyDomain": SHOP}

    def _owners_matching(self, search):
        if not search:
            return self.owners
        wanted = set(SEARCH_TAG.findall(search))
        return [o for o in self.owners if wanted & set(self.tags.get(o, []))]

    def count_resources(self, object_type, search=None):
        self.calls.append(("count_resources", object_type, search))
        return len(self._owners_matching(search)) if self.total is None else self.total

    def fetch_owner_page(self, object_type, cursor, first, search=None, with_tags=False):
        self.calls.append(("fetch_owner_page", cursor, first, search))
        owners = self._owners_matching(search)

        start = int(cursor or 0)
        end = start + first
        items = []
        for gid in owners[start:end]:
            item = {"id": gid}
            if with_tags:
                item["tags"] = list(self.tags.get(gid, []))
            items.append(item)
        has_more = end < len(owners)
        return Page(items=items, next_cursor=str(end) if has_more else None, has_more=has_more)

    def fetch_tags_page(self, object_type, cursor, first=None):
        self.calls.append(("fetch_tags_page", cursor))
        index = int(cursor or 0)
        if index >= len(self.tag_pages):
            return None
        items = self.tag_pages[index]
        has_more = index + 1 < len(self.tag_pages)
        return Page(items=items, next_cursor=str(index + 1) if has_more else None, has_more=has_more)

    def tag_page_size(self, object_type):
        return 1000

    def fetch_metafield_definitions(self, object_type):
        self.calls.append(("fetch_metafield_definitions", object_type))
        return list(self.definitions)

    def resolve_metaobject(self, metaobject_type, handle):
        self.calls.append(("resolve_metaobject", metaobject_type, handle))
        return self.metaobjects.get((metaobject_type, handle))

    # Tags

    def get_tags(self, resource_id):
        self.calls.append(("get_tags", resource_id))
        return list(self.tags.get(resource_id, []))

    def add_tags(self, resource_id, tags):
        self.calls.append(("add_tags", resource_id, list(tags)))
        if resource_id in self.mutation_errors:
            raise RemoteMutationError(self.mutation_errors[resource_id])
        current = self.tags.setdefault(resource_id, [])
        current.extend(t for t in tags if t not in current)

    def remove_tags(self, resource_id, tags):
        self.calls.append(("remove_tags", resource_id, list(tags)))
        if resource_id in self.mutation_errors:
            raise RemoteMutationError(self.mutation_errors[resource_id])
        self.tags[resource_id] = [t for t in self.tags.get(resource_id, []) if t not in tags]

    # Metafields

    def get_metafield(self, owner_id, namespace, key):
        self.calls.append(("get_metafield", owner_id, namespace, key))
        found = self.metafields.get((owner_id, namespace, key))
        if not found:
            return None
        return dict(found, namespace=namespace, key=key)

    def set_metafield(self, owner_id, namespace, key, type_name, value):
        self.calls.append(("set_metafield", owner_id, namespace, key, type_name, value))
        if owner_id in self.mutation_errors:
            raise RemoteMutationError(self.mutation_errors[owner_id])
        self.metafields[(owner_id, namespace, key)] = {
            "id": f"gid://shopify/Metafield/{len(self.metafields) + 1}",
            "type": type_name,
            "value": value,
        }
        return self.metafields[(owner_id, namespace, key)]

    def delete_metafields(self, identifiers):
        self.calls.append(("delete_metafields", identifiers))
        deleted = []
        for ident in identifiers:
            self.metafields.pop((ident["ownerId"], ident["namespace"], ident["key"]), None)
            deleted.append(dict(ident))
        return deleted


@pytest.fixture
def fake_client():
    return FakeShopifyClient()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import app.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def inline_jobs(monkeypatch, session_factory):
    monkeypatch.setattr(settings, "run_jobs_inline", True)
    monkeypatch.setattr(job_service, "session_factory", session_factory)
    monkeypatch.setattr(database, "SessionLocal", session_factory)
    return job_service


@pytest.fixture
def api_client(inline_jobs, session_factory, fake_client):
    from fastapi.testclient import TestClient

    from app.main import app
    from app.services.shopify_service import get_shopify_service

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[database.get_db] = override_get_db
    app.dependency_overrides[get_shopify_service] = lambda: fake_client
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
