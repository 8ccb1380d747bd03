"""Tests for the mortgage package dashboard and editor routes."""
from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app.mortgage_dashboard import create_app, shutdown_app
from app.mortgage_dashboard.auth_context import AuthContext
from app.mortgage_dashboard.auth_provider import auth_from_config
from app.mortgage_dashboard.db import session_scope
from app.mortgage_dashboard.models import Base, Profile
from app.mortgage_dashboard.store import PackageStore, StoreError


def _seed_profiles(app):
    with session_scope(app.extensions["sqlalchemy_sessionmaker"]) as s:
        s.add_all(
            [
                Profile(email="admin@example.com", password_hash=generate_password_hash("pw"), role="admin"),
                Profile(email="viewer@example.com", password_hash=generate_password_hash("pw"), role="viewer"),
            ]
        )


@pytest.fixture()
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORE_BACKEND", "sql")
    monkeypatch.setenv("EDITOR_ROLES", "admin")
    monkeypatch.setenv("PAGE_SIZE", "10")
    for k in ("SUPABASE_URL", "SUPABASE_ANON_KEY"):
        monkeypatch.delenv(k, raising=False)


@pytest.fixture()
def app(env):
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    _seed_profiles(app)
    yield app
    shutdown_app(app)


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="admin@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=True)


def _csrf(client):
    with client.session_transaction() as sess:
        return sess["csrf_token"]


def _form(client, **overrides):
    data = {
        "csrf_token": _csrf(client),
        "bank": "DBS",
        "property_type": "HDB",
        "category": "Fixed",
        "min_loan_size": "500000",
        "package_name": "DBS 2Y Fixed",
        "lockin_period": "2 Years",
        "rates": "Year 1: 2.5% <br> Year 2: 2.6%",
        "features": "- Lowest rate for HDB buyers",
        "subsidies": "",
        "remarks": "",
        "last_updated": date.today().isoformat(),
    }
    data.update(overrides)
    return data


def _store(app):
    return app.extensions["package_store"]


def test_dashboard_empty_state(client):
    _login(client)
    r = client.get("/dashboard")
    assert r.status_code == 200
    assert b"No mortgage packages found" in r.data
    assert b"Showing 0 of 0 packages" in r.data
    assert b"Add Package" in r.data


def test_package_create(client, app):
    _login(client)
    r = client.get("/dashboard/packages/new")
    assert r.status_code == 200
    assert b"Create Package" in r.data

    r = client.post("/dashboard/packages/new", data=_form(client), follow_redirects=True)
    assert r.status_code == 200
    assert b"Mortgage package created successfully" in r.data
    assert b"DBS 2Y Fixed" in r.data
    assert b"Best Rate" in r.data
    assert b"S$500,000" in r.data

    [pkg] = _store(app).list()
    assert pkg.subsidies is None
    assert pkg.feature_tag.value == "Best Rate"


def test_package_create_rejects_zero_loan_size(client, app):
    _login(client)
    r = client.post("/dashboard/packages/new", data=_form(client, min_loan_size="0"))
    assert r.status_code == 400
    assert b"Minimum loan size must be greater than 0" in r.data
    assert b"DBS 2Y Fixed" in r.data
    assert _store(app).list() == []


def test_package_create_requires_csrf(client, app):
    _login(client)
    data = _form(client)
    data.pop("csrf_token")
    r = client.post("/dashboard/packages/new", data=data)
    assert r.status_code == 400
    assert _store(app).list() == []


def test_package_edit(client, app):
    _login(client)
    client.post("/dashboard/packages/new", data=_form(client))
    [pkg] = _store(app).list()

    r = client.get(f"/dashboard/packages/{pkg.id}/edit")
    assert r.status_code == 200
    assert b"Update Package" in r.data
    assert b"DBS 2Y Fixed" in r.data

    r = client.post(
        f"/dashboard/packages/{pkg.id}/edit",
        data=_form(client, package_name="DBS 3Y Fixed", lockin_period="3 Years"),
        follow_redirects=True,
    )
    assert r.status_code == 200
    assert b"Mortgage package updated successfully" in r.data

    [updated] = _store(app).list()
    assert updated.id == pkg.id
    assert updated.package_name == "DBS 3Y Fixed"
    assert updated.lockin_period == "3 Years"


def test_package_edit_missing_is_404(client):
    _login(client)
    assert client.get("/dashboard/packages/nope/edit").status_code == 404


def test_package_delete_requires_confirmation(client, app):
    _login(client)
    client.post("/dashboard/packages/new", data=_form(client))
    [pkg] = _store(app).list()

    r = client.get(f"/dashboard/packages/{pkg.id}/delete")
    assert r.status_code == 200
    assert b"Are you sure you want to delete this package?" in r.data

    r = client.post(f"/dashboard/packages/{pkg.id}/delete", data={"csrf_token": _csrf(client)})
    assert r.status_code == 302
    assert len(_store(app).list()) == 1

    r = client.post(
        f"/dashboard/packages/{pkg.id}/delete",
        data={"csrf_token": _csrf(client), "confirm": "yes"},
        follow_redirects=True,
    )
    assert b"Mortgage package deleted successfully" in r.data
    assert _store(app).list() == []


def test_viewer_can_list_but_not_edit(client, app):
    _store(app).insert(
        {
            "bank": "UOB",
            "property_type": "Private",
            "category": "BUC",
            "min_loan_size": 300000,
            "package_name": "UOB BUC",
            "lockin_period": "3 Years",
            "rates": "2.6%",
            "last_updated": "2024-01-01",
        }
    )
    _login(client, "viewer@example.com")

    r = client.get("/dashboard")
    assert r.status_code == 200
    assert b"UOB BUC" in r.data
    assert b"Add Package" not in r.data
    assert b"/edit" not in r.data

    assert client.get("/dashboard/packages/new").status_code == 403
    [pkg] = _store(app).list()
    r = client.post(f"/dashboard/packages/{pkg.id}/delete", data={"csrf_token": _csrf(client), "confirm": "yes"})
    assert r.status_code == 403
    assert len(_store(app).list()) == 1


def test_editor_routes_redirect_anonymous(client):
    r = client.get("/dashboard/packages/new")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def _seed_numbered(app, count):
    store = _store(app)
    for i in range(count):
        store.insert(
            {
                "bank": "DBS" if i % 2 == 0 else "OCBC",
                "property_type": "HDB",
                "category": "Fixed",
                "min_loan_size": 100000 + i * 10000,
                "package_name": f"Pkg {i:02d}",
                "lockin_period": "2 Years",
                "rates": "2.5%",
                "last_updated": "2024-01-01",
            }
        )


def test_dashboard_paginates_and_resets_page_on_filter_change(client, app):
    _seed_numbered(app, 25)
    _login(client)
    client.get("/dashboard?sort=package_name-asc")

    r = client.get("/dashboard?sort=package_name-asc&page=3")
    assert b"Pkg 20" in r.data and b"Pkg 24" in r.data
    assert b"Pkg 00" not in r.data
    assert b"Showing 25 of 25 packages" in r.data

    r = client.get("/dashboard?sort=package_name-asc&page=2")
    assert b"Pkg 10" in r.data and b"Pkg 19" in r.data

    # Same page number but a new sort: back to page 1
    r = client.get("/dashboard?sort=package_name-desc&page=2")
    assert b"Pkg 24" in r.data
    assert b"Pkg 14" not in r.data

    # Same page number but a new filter: back to page 1
    r = client.get("/dashboard?sort=package_name-asc&page=2&q=Pkg")
    assert b"Pkg 00" in r.data
    assert b"Pkg 10" not in r.data


def test_dashboard_client_loan_orders_by_closest_fit(client, app):
    _seed_numbered(app, 5)
    _login(client)

    r = client.get("/dashboard?client_loan=125000&sort=package_name-asc")
    body = r.data.decode()
    assert "Matching Packages:</strong> 3" in body
    assert "S$125,000" in body
    assert body.index("Pkg 02") < body.index("Pkg 01") < body.index("Pkg 00")
    assert "Pkg 03" not in body
    assert body.count("Most Relevant") == 1


def test_dashboard_filters_by_bank(client, app):
    _seed_numbered(app, 4)
    _login(client)

    r = client.get("/dashboard?bank=OCBC")
    assert b"Pkg 01" in r.data and b"Pkg 03" in r.data
    assert b"Pkg 00" not in r.data
    assert b"Showing 2 of 4 packages" in r.data


class FailingStore(PackageStore):
    def list(self, *, access_token=None):
        raise StoreError("backend unavailable")

    def insert(self, fields, *, access_token=None):
        raise StoreError("backend unavailable")


@pytest.fixture()
def failing_client(env):
    app = create_app(store=FailingStore())
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    _seed_profiles(app)
    yield app.test_client()
    shutdown_app(app)


def test_store_failure_on_list_shows_message(failing_client):
    _login(failing_client)
    r = failing_client.get("/dashboard")
    assert r.status_code == 200
    assert b"Failed to fetch mortgage packages" in r.data
    assert b"No mortgage packages found" in r.data


def test_store_failure_on_create_keeps_form_values(failing_client):
    _login(failing_client)
    r = failing_client.post("/dashboard/packages/new", data=_form(failing_client, package_name="Kept Name"))
    assert r.status_code == 502
    assert b"Failed to create mortgage package" in r.data
    assert b"Kept Name" in r.data


def test_injected_auth_context_is_used(env):
    app = create_app(store=FailingStore())
    sessions = app.extensions["sqlalchemy_sessionmaker"]
    auth = AuthContext(auth_from_config(app.config, sessions=sessions))
    app2 = create_app(store=FailingStore(), auth=auth)
    try:
        assert app2.extensions["auth_context"] is auth
        assert auth.started
        assert "sqlalchemy_engine" not in app2.extensions
    finally:
        shutdown_app(app2)
        shutdown_app(app)


def test_role_change_applies_to_signed_in_user(client, app):
    _login(client)
    assert client.get("/dashboard/packages/new").status_code == 200

    with session_scope(app.extensions["sqlalchemy_sessionmaker"]) as s:
        s.query(Profile).filter(Profile.email == "admin@example.com").one().role = "viewer"

    assert client.get("/dashboard/packages/new").status_code == 403
    r = client.get("/dashboard")
    assert r.status_code == 200
    assert b"Add Package" not in r.data


def test_editor_links_carry_dashboard_state(client, app):
    _seed_numbered(app, 3)
    _login(client)
    client.get("/dashboard?bank=DBS&sort=bank-asc")

    r = client.get("/dashboard?bank=DBS&sort=bank-asc")
    body = r.data.decode()
    assert "/dashboard/packages/new?" in body
    assert "/edit?" in body and "bank=DBS" in body

    r = client.get("/dashboard/packages/new?bank=DBS&sort=bank-asc&client_loan=500000")
    assert b'name="list_bank" value="DBS"' in r.data
    assert b'name="list_client_loan" value="500000"' in r.data


def test_create_returns_to_filtered_dashboard(client, app):
    _login(client)
    r = client.post(
        "/dashboard/packages/new",
        data=_form(client, bank="OCBC", list_bank="DBS", list_sort="bank-asc", list_client_loan="500000"),
    )
    assert r.status_code == 302
    location = r.headers["Location"]
    assert "/dashboard?" in location
    assert "bank=DBS" in location
    assert "sort=bank-asc" in location
    assert "client_loan=500000" in location
    assert _store(app).list()[0].bank == "OCBC"


def test_validation_error_keeps_dashboard_state(client):
    _login(client)
    r = client.post("/dashboard/packages/new", data=_form(client, min_loan_size="0", list_q="fixed"))
    assert r.status_code == 400
    assert b'name="list_q" value="fixed"' in r.data


def test_edit_and_delete_return_to_same_page(client, app):
    _seed_numbered(app, 2)
    _login(client)
    pkg = _store(app).list()[0]

    r = client.post(
        f"/dashboard/packages/{pkg.id}/edit",
        data=_form(client, list_page="2", list_category="Fixed"),
    )
    assert r.status_code == 302
    assert "page=2" in r.headers["Location"]
    assert "category=Fixed" in r.headers["Location"]

    r = client.post(
        f"/dashboard/packages/{pkg.id}/delete",
        data={"csrf_token": _csrf(client), "confirm": "yes", "list_page": "2", "list_q": "Pkg"},
    )
    assert r.status_code == 302
    assert "page=2" in r.headers["Location"]
    assert "q=Pkg" in r.headers["Location"]
    assert len(_store(app).list()) == 1
