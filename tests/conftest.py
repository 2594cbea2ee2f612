import pytest

from wishshare import create_app, db, socketio

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256-signing"


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SECRET_KEY": TEST_SECRET,
        "JWT_SECRET_KEY": TEST_SECRET,
        "RATELIMIT_ENABLED": False,
        "MAIL_SUPPRESS_SEND": True,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(client):
    """Register a user and return ``(user_dict, headers)``."""
    def _make_user(email, display_name=None, password="secret123"):
        resp = client.post(
            "/api/auth/register",
            json={"email": email, "password": password, "display_name": display_name or email.split("@")[0]},
        )
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        return body["user"], {"Authorization": f"Bearer {body['token']}"}
    return _make_user


@pytest.fixture
def alice(make_user):
    return make_user("alice@example.com", "Alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob@example.com", "Bob")


@pytest.fixture
def carol(make_user):
    return make_user("carol@example.com", "Carol")


@pytest.fixture
def wishlist(client, alice):
    _, headers = alice
    resp = client.post("/api/wishlists", headers=headers, json={"name": "Birthday"})
    assert resp.status_code == 201
    return resp.get_json()["wishlist"]


@pytest.fixture
def shared_wishlist(client, alice, bob, wishlist):
    """Alice's wishlist with Bob invited as a plain member."""
    _, headers = alice
    resp = client.post(
        f"/api/wishlists/{wishlist['wishlist_id']}/invite",
        headers=headers,
        json={"email": "bob@example.com"},
    )
    assert resp.status_code == 200
    return resp.get_json()["wishlist"]


@pytest.fixture
def socket_for(app):
    """Open an authenticated Socket.IO test client for a bearer header."""
    clients = []

    def _socket_for(headers):
        token = headers["Authorization"].split(" ", 1)[1]
        sc = socketio.test_client(app, auth={"token": token})
        clients.append(sc)
        return sc

    yield _socket_for
    for sc in clients:
        if sc.is_connected():
            sc.disconnect()
