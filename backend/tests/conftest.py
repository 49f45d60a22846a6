import os
import tempfile
from typing import Callable, Generator

_TMP = tempfile.mkdtemp(prefix="propertyhub-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TMP, 'app.db')}")
os.environ["UPLOADS_DIR"] = os.path.join(_TMP, "uploads")
os.environ["EMAIL_BACKEND"] = "console"
os.environ["JWT_SECRET"] = "test-secret"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from propertyhub.db import get_db  # noqa: E402
from propertyhub.main import app  # noqa: E402
from propertyhub.models import Base, Category, MiniSubcategory, Property, Subcategory, User  # noqa: E402
from propertyhub.security import create_access_token  # noqa: E402


# One in-memory database shared by every connection of the test engine.
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client whose requests share the test session."""

    def override_get_db():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _add_category(db: Session, slug: str, tree: dict[str, list[str]], sort_order: int = 999) -> dict:
    category = Category(slug=slug, name=slug.title(), sort_order=sort_order)
    db.add(category)
    db.flush()
    ids = {"id": category.id, "subs": {}, "minis": {}}
    for i, (sub_slug, minis) in enumerate(tree.items()):
        sub = Subcategory(category_id=category.id, slug=sub_slug, name=sub_slug.title(), sort_order=i)
        db.add(sub)
        db.flush()
        ids["subs"][sub_slug] = sub.id
        for j, mini_slug in enumerate(minis):
            mini = MiniSubcategory(subcategory_id=sub.id, slug=mini_slug, name=mini_slug.title(), sort_order=j)
            db.add(mini)
            db.flush()
            ids["minis"][mini_slug] = mini.id
    return ids


@pytest.fixture
def taxonomy(db_session: Session) -> dict:
    """
    A small tree:

    commercial -> shop-spaces -> retail-shop, showroom
               -> office-spaces -> office
    residential -> houses -> villa
    rent (tab) -> office-spaces -> office   (duplicate "office" slug)
    buy (tab, no children)
    """
    tree = {
        "commercial": _add_category(
            db_session,
            "commercial",
            {"shop-spaces": ["retail-shop", "showroom"], "office-spaces": ["office"]},
            sort_order=1,
        ),
        "residential": _add_category(db_session, "residential", {"houses": ["villa"]}, sort_order=2),
        "rent": _add_category(db_session, "rent", {"office-spaces": ["office"]}, sort_order=91),
        "buy": _add_category(db_session, "buy", {}, sort_order=90),
    }
    db_session.commit()
    return tree


def _add_user(db: Session, email: str, role: str = "user") -> User:
    user = User(email=email, name=email.split("@")[0].title(), role=role)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def owner(db_session: Session) -> User:
    """The listing owner used by most tests."""
    return _add_user(db_session, "owner@example.com")


@pytest.fixture
def other_user(db_session: Session) -> User:
    return _add_user(db_session, "other@example.com")


@pytest.fixture
def admin_user(db_session: Session) -> User:
    return _add_user(db_session, "admin@example.com", role="admin")


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id=user.id, role=user.role)}"}


@pytest.fixture
def auth_headers(owner: User) -> dict:
    return _headers(owner)


@pytest.fixture
def other_auth_headers(other_user: User) -> dict:
    return _headers(other_user)


@pytest.fixture
def admin_auth_headers(admin_user: User) -> dict:
    return _headers(admin_user)


@pytest.fixture
def make_property(db_session: Session, owner: User) -> Callable[..., Property]:
    """Insert a listing directly; defaults to a publicly visible commercial sale."""

    def _make(**overrides) -> Property:
        values = {
            "owner_id": owner.id,
            "title": "Listing",
            "price": 1_000_000,
            "price_type": "sale",
            "property_type": "commercial",
            "sub_category": "",
            "status": "active",
            "approval_status": "approved",
        }
        values.update(overrides)
        p = Property(**values)
        db_session.add(p)
        db_session.commit()
        return p

    return _make
