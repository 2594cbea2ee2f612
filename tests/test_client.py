import pytest

from wishshare import socketio
from wishshare.client.api import WishShareClient
from wishshare.errors import AccessDenied, Conflict, ValidationError


class FlaskResponse:
    def __init__(self, response):
        self.status_code = response.status_code
        self.text = response.get_data(as_text=True)
        self._json = response.get_json(silent=True)

    def json(self):
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json


class FlaskSession:
    """Stands in for requests.Session, routing calls into the Flask test client."""

    def __init__(self, client):
        self.client = client
        self.calls = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        path = url.split("http://testserver", 1)[1]
        self.calls.append((method, path))
        return FlaskResponse(self.client.open(path, method=method, json=json, headers=headers))


@pytest.fixture
def sdk(client):
    def _sdk():
        return WishShareClient("http://testserver", session=FlaskSession(client))
    return _sdk


def test_register_and_login_set_token(sdk):
    api = sdk()
    user = api.register("erin@example.com", "secret123", "Erin")
    assert api.token
    assert api.view.user_id == user["user_id"]

    other = sdk()
    other.login("erin@example.com", "secret123")
    assert other.view.user_id == user["user_id"]
    assert other.session.calls == [("POST", "/api/auth/login")]


def test_errors_map_to_exceptions(sdk):
    api = sdk()
    api.register("erin@example.com", "secret123", "Erin")

    with pytest.raises(ValidationError) as excinfo:
        api.create_wishlist("")
    assert excinfo.value.status_code == 400
    assert excinfo.value.errors[0]["field"] == "name"


def test_mutations_merge_into_view(sdk):
    api = sdk()
    api.register("erin@example.com", "secret123", "Erin")

    wishlist = api.create_wishlist("Birthday")
    wid = wishlist["wishlist_id"]
    item = api.create_item(wid, "Bike", price=150)
    comment = api.add_comment(wid, item["item_id"], "Red")
    api.react(wid, item["item_id"], "🎉")

    local = api.view.item(item["item_id"])
    assert local["name"] == "Bike"
    assert [c["comment_id"] for c in local["comments"]] == [comment["comment_id"]]
    assert [r["emoji"] for r in local["reactions"]] == ["🎉"]

    api.unreact(wid, item["item_id"])
    api.delete_comment(wid, item["item_id"], comment["comment_id"])
    assert api.view.item(item["item_id"])["comments"] == []
    assert api.view.item(item["item_id"])["reactions"] == []

    api.update_wishlist(wid, name="Party")
    assert api.view.wishlists[wid]["name"] == "Party"

    api.delete_item(wid, item["item_id"])
    assert api.view.items(wid) == []

    api.delete_wishlist(wid)
    assert wid not in api.view.wishlists


def test_shared_wishlist_claim_flow(sdk):
    alice, bob, carol = sdk(), sdk(), sdk()
    alice.register("alice@example.com", "secret123", "Alice")
    bob_user = bob.register("bob@example.com", "secret123", "Bob")
    carol.register("carol@example.com", "secret123", "Carol")

    wid = alice.create_wishlist("Birthday")["wishlist_id"]
    alice.invite(wid, "bob@example.com")
    alice.invite(wid, "carol@example.com")
    item = alice.create_item(wid, "Bike")

    assert [w["name"] for w in bob.wishlists()] == ["Birthday"]
    bob.items(wid)
    claimed = bob.claim_item(wid, item["item_id"])
    assert claimed["claimed_by"]["user_id"] == bob_user["user_id"]
    assert bob.view.item(item["item_id"])["status"] == "claimed"

    with pytest.raises(Conflict):
        carol.claim_item(wid, item["item_id"])

    with pytest.raises(AccessDenied):
        bob.set_item_status(wid, item["item_id"], "available")
    released = alice.set_item_status(wid, item["item_id"], "available")
    assert released["claimed_by"] is None


def test_leaving_a_wishlist_drops_it_from_view(sdk):
    alice, bob = sdk(), sdk()
    alice.register("alice@example.com", "secret123", "Alice")
    bob_user = bob.register("bob@example.com", "secret123", "Bob")
    wid = alice.create_wishlist("Birthday")["wishlist_id"]
    member = alice.invite(wid, "bob@example.com")
    assert member["user_id"] == bob_user["user_id"]

    bob.wishlists()
    bob.remove_member(wid, bob_user["user_id"])
    assert wid not in bob.view.wishlists
    assert bob.wishlists() == []


class BridgedSocket:
    """Stands in for socketio.Client on top of Flask-SocketIO's test client."""

    def __init__(self, app):
        self.app = app
        self.handlers = {}
        self.emitted = []
        self.tc = None
        self.auth = None

    def on(self, name, handler):
        self.handlers[name] = handler

    def connect(self, url, auth=None):
        self.auth = auth
        self._open()

    def _open(self):
        self.tc = socketio.test_client(self.app, auth=self.auth)
        assert self.tc.is_connected()
        self.handlers["connect"]()

    def emit(self, name, data):
        self.emitted.append((name, data))
        self.tc.emit(name, data)
        self.pump()

    def pump(self):
        for packet in self.tc.get_received():
            handler = self.handlers.get(packet["name"])
            if handler is not None:
                handler(*packet["args"])

    def drop(self):
        self.tc.disconnect()

    def reconnect(self):
        self._open()

    def disconnect(self):
        if self.tc is not None and self.tc.is_connected():
            self.tc.disconnect()


@pytest.fixture
def live(app):
    sockets = []

    def _live(api):
        sock = BridgedSocket(app)
        sockets.append(sock)
        api.connect(sio=sock)
        return sock

    yield _live
    for sock in sockets:
        sock.disconnect()


@pytest.fixture
def pair(sdk):
    alice, bob = sdk(), sdk()
    alice.register("alice@example.com", "secret123", "Alice")
    bob.register("bob@example.com", "secret123", "Bob")
    wid = alice.create_wishlist("Birthday")["wishlist_id"]
    alice.invite(wid, "bob@example.com")
    return alice, bob, wid


def test_broadcasts_flow_into_the_view(pair, live):
    alice, bob, wid = pair
    bob_sock = live(bob)
    bob.join(wid)
    assert ("join_wishlist", wid) in bob_sock.emitted

    item = alice.create_item(wid, "Bike", priority="high")
    bob_sock.pump()
    assert bob.view.item(item["item_id"])["name"] == "Bike"

    alice.claim_item(wid, item["item_id"])
    alice.add_comment(wid, item["item_id"], "Got it")
    bob_sock.pump()
    local = bob.view.item(item["item_id"])
    assert local["status"] == "claimed"
    assert [c["text"] for c in local["comments"]] == ["Got it"]

    alice.delete_item(wid, item["item_id"])
    bob_sock.pump()
    assert bob.view.item(item["item_id"]) is None


def test_own_echo_leaves_view_unchanged(pair, live):
    alice, _, wid = pair
    alice_sock = live(alice)
    alice.join(wid)
    item = alice.create_item(wid, "Bike")
    comment = alice.add_comment(wid, item["item_id"], "Red")

    alice_sock.pump()

    assert [c["comment_id"] for c in alice.view.item(item["item_id"])["comments"]] == [comment["comment_id"]]
    assert [i["item_id"] for i in alice.view.items(wid)] == [item["item_id"]]


def test_typing_reaches_other_viewer(pair, live):
    alice, bob, wid = pair
    alice_sock = live(alice)
    live(bob)
    alice.join(wid)
    bob.join(wid)
    item = alice.create_item(wid, "Bike")
    alice_sock.pump()

    bob.typing(wid, item["item_id"], True)
    alice_sock.pump()
    assert alice.view.typing_users(item["item_id"]) == frozenset({bob.view.user_id})

    bob.typing(wid, item["item_id"], False)
    alice_sock.pump()
    assert alice.view.typing_users(item["item_id"]) == frozenset()


def test_leave_stops_updates(pair, live):
    alice, bob, wid = pair
    bob_sock = live(bob)
    bob.join(wid)
    bob.leave(wid)
    assert ("leave_wishlist", wid) in bob_sock.emitted

    item = alice.create_item(wid, "Bike")
    bob_sock.pump()
    assert bob.view.item(item["item_id"]) is None
    assert wid not in bob.joined


def test_reconnect_rejoins_and_refetches(pair, live):
    alice, bob, wid = pair
    bob_sock = live(bob)
    bob.join(wid)

    bob_sock.drop()
    missed = alice.create_item(wid, "Missed while away")
    assert bob.view.item(missed["item_id"]) is None

    bob_sock.reconnect()
    assert bob_sock.emitted.count(("join_wishlist", wid)) == 2
    assert bob.view.item(missed["item_id"])["name"] == "Missed while away"

    later = alice.create_item(wid, "After reconnect")
    bob_sock.pump()
    assert bob.view.item(later["item_id"])["name"] == "After reconnect"


def test_refused_join_is_not_retried(sdk, live):
    alice, carol = sdk(), sdk()
    alice.register("alice@example.com", "secret123", "Alice")
    carol.register("carol@example.com", "secret123", "Carol")
    wid = alice.create_wishlist("Private")["wishlist_id"]
    live(carol)

    with pytest.raises(AccessDenied):
        carol.join(wid)
    assert wid not in carol.joined
