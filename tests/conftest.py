"""
Shared pytest fixtures for the Badger test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - member / other_member / admin: Pre-created users
    - make_badge: factory for badge applications (accepted by default)
    - make_template: factory for promotion templates
    - make_promotion: factory for draft promotions
    - headers: factory for the caller identity header
"""

import pytest

from badger import create_app
from badger.models import db as _db
from badger.models.auth import User
from badger.models.catalog import BadgeApplication, CatalogBadge
from badger.models.promotion import Promotion, PromotionTemplate


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def headers():
    """Build request headers carrying the caller identity."""

    def _headers(user_id):
        return {"X-User-Id": user_id}

    return _headers


# ── Users ────────────────────────────────────────────────────────────────


def _make_user(email: str, is_admin: bool = False) -> User:
    u = User(email=email, display_name=email.split("@")[0], is_admin=is_admin)
    _db.session.add(u)
    _db.session.commit()
    return u


@pytest.fixture()
def member():
    return _make_user("member@test.com")


@pytest.fixture()
def other_member():
    return _make_user("other@test.com")


@pytest.fixture()
def admin():
    return _make_user("admin@test.com", is_admin=True)


# ── Catalog / templates / promotions ─────────────────────────────────────


@pytest.fixture()
def make_badge():
    """Create a badge application; returns its id.

    Each call creates its own catalog badge so category/level are free.
    """

    def _make(owner, category="technical", level="gold", status="accepted"):
        cb = CatalogBadge(title=f"{category} {level}", category=category, level=level)
        _db.session.add(cb)
        _db.session.flush()
        ba = BadgeApplication(applicant_id=owner.id, catalog_badge_id=cb.id, status=status)
        _db.session.add(ba)
        _db.session.commit()
        return ba.id

    return _make


@pytest.fixture()
def make_template():
    """Create a promotion template from a list of (category, level, count)."""

    def _make(rules, *, path="technical", from_level="I", to_level="II",
              is_active=True, name="Template"):
        tpl = PromotionTemplate(
            name=name,
            path=path,
            from_level=from_level,
            to_level=to_level,
            rules=[{"category": c, "level": lv, "count": n} for c, lv, n in rules],
            is_active=is_active,
        )
        _db.session.add(tpl)
        _db.session.commit()
        return tpl

    return _make


@pytest.fixture()
def make_promotion():
    """Create a draft promotion owned by ``owner`` directly via the ORM."""

    def _make(owner, template, status="draft"):
        p = Promotion(
            template_id=template.id,
            created_by=owner.id,
            path=template.path,
            from_level=template.from_level,
            to_level=template.to_level,
            status=status,
        )
        _db.session.add(p)
        _db.session.commit()
        return p

    return _make
