import pytest

from wishshare import socketio


def events_named(sc, name):
    return [e["args"][0] for e in sc.get_received() if e["name"] == name]


def _joined(socket_for, headers, wishlist_id):
    sc = socket_for(headers)
    assert sc.is_connected()
    sc.emit("join_wishlist", wishlist_id)
    sc.get_received()
    return sc


@pytest.fixture
def registry(app):
    return app.extensions["channel_registry"]


def _subscribed_users(registry, wishlist_id):
    return {user_id for _, user_id in registry.subscribers(wishlist_id)}


def test_connect_without_token_is_refused(app):
    sc = socketio.test_client(app)
    assert not sc.is_connected()


def test_connect_with_bad_token_is_refused(app):
    sc = socketio.test_client(app, auth={"token": "not-a-jwt"})
    assert not sc.is_connected()


def test_connect_registers_session(socket_for, alice, registry):
    _, headers = alice
    sc = socket_for(headers)
    assert sc.is_connected()
    assert registry.session_count == 1
    sc.disconnect()
    assert registry.session_count == 0


def test_join_unreadable_wishlist_is_refused(socket_for, carol, wishlist, registry):
    _, headers = carol
    sc = socket_for(headers)
    sc.emit("join_wishlist", wishlist["wishlist_id"])

    refused = events_named(sc, "join_error")
    assert refused == [{"wishlist_id": wishlist["wishlist_id"], "error": "Access denied"}]
    assert registry.subscribers(wishlist["wishlist_id"]) == frozenset()


def test_join_unknown_wishlist_is_refused(socket_for, alice):
    _, headers = alice
    sc = socket_for(headers)
    sc.emit("join_wishlist", {"wishlist_id": 9999})
    assert events_named(sc, "join_error")[0]["error"] == "Access denied"


def test_events_stay_on_their_wishlist_channel(client, socket_for, alice):
    alice_user, headers = alice
    first = client.post("/api/wishlists", headers=headers, json={"name": "First"}).get_json()["wishlist"]
    second = client.post("/api/wishlists", headers=headers, json={"name": "Second"}).get_json()["wishlist"]
    sc = _joined(socket_for, headers, first["wishlist_id"])

    client.post(f"/api/wishlists/{second['wishlist_id']}/items", headers=headers, json={"name": "Elsewhere"})
    client.post(f"/api/wishlists/{first['wishlist_id']}/items", headers=headers, json={"name": "Here"})

    added = events_named(sc, "item_added")
    assert [e["item"]["name"] for e in added] == ["Here"]
    assert added[0]["wishlist_id"] == first["wishlist_id"]
    assert added[0]["actor_id"] == alice_user["user_id"]


def test_leave_stops_delivery(client, socket_for, alice, wishlist):
    _, headers = alice
    wid = wishlist["wishlist_id"]
    sc = _joined(socket_for, headers, wid)
    sc.emit("leave_wishlist", wid)

    client.post(f"/api/wishlists/{wid}/items", headers=headers, json={"name": "Quiet"})
    assert events_named(sc, "item_added") == []


def test_typing_reaches_others_but_not_sender(client, socket_for, alice, bob, shared_wishlist):
    _, alice_headers = alice
    bob_user, bob_headers = bob
    wid = shared_wishlist["wishlist_id"]
    item = client.post(f"/api/wishlists/{wid}/items", headers=alice_headers, json={"name": "Bike"}).get_json()["item"]
    alice_sc = _joined(socket_for, alice_headers, wid)
    bob_sc = _joined(socket_for, bob_headers, wid)

    bob_sc.emit("typing_comment", {
        "wishlist_id": wid, "item_id": item["item_id"], "is_typing": True, "user_id": 12345,
    })

    typing = events_named(alice_sc, "user_typing_comment")
    assert typing == [{
        "wishlist_id": wid, "item_id": item["item_id"], "user_id": bob_user["user_id"], "is_typing": True,
    }]
    assert bob_sc.get_received() == []


def test_typing_requires_joined_channel(socket_for, alice, bob, shared_wishlist):
    _, alice_headers = alice
    _, bob_headers = bob
    wid = shared_wishlist["wishlist_id"]
    alice_sc = _joined(socket_for, alice_headers, wid)
    bob_sc = socket_for(bob_headers)

    bob_sc.emit("typing_comment", {"wishlist_id": wid, "item_id": 1, "is_typing": True})
    assert alice_sc.get_received() == []


def test_removed_member_stops_receiving(client, socket_for, alice, bob, shared_wishlist, registry):
    alice_user, alice_headers = alice
    bob_user, bob_headers = bob
    wid = shared_wishlist["wishlist_id"]
    bob_sc = _joined(socket_for, bob_headers, wid)
    _joined(socket_for, alice_headers, wid)

    client.delete(f"/api/wishlists/{wid}/members/{bob_user['user_id']}", headers=alice_headers)
    removed = events_named(bob_sc, "member_removed")
    assert removed[0]["user_id"] == bob_user["user_id"]

    client.post(f"/api/wishlists/{wid}/items", headers=alice_headers, json={"name": "Secret"})
    assert events_named(bob_sc, "item_added") == []
    assert _subscribed_users(registry, wid) == {alice_user["user_id"]}


def test_wishlist_deleted_is_announced_and_channel_closed(client, socket_for, alice, bob, shared_wishlist, registry):
    alice_user, alice_headers = alice
    _, bob_headers = bob
    wid = shared_wishlist["wishlist_id"]
    bob_sc = _joined(socket_for, bob_headers, wid)

    client.delete(f"/api/wishlists/{wid}", headers=alice_headers)

    assert events_named(bob_sc, "wishlist_deleted") == [{"wishlist_id": wid, "actor_id": alice_user["user_id"]}]
    assert registry.subscribers(wid) == frozenset()


def test_birthday_bike_scenario(client, socket_for, alice, bob, carol, shared_wishlist):
    _, alice_headers = alice
    bob_user, bob_headers = bob
    _, carol_headers = carol
    wid = shared_wishlist["wishlist_id"]
    client.post(f"/api/wishlists/{wid}/invite", headers=alice_headers, json={"email": "carol@example.com"})

    alice_sc = _joined(socket_for, alice_headers, wid)
    bob_sc = _joined(socket_for, bob_headers, wid)

    item = client.post(f"/api/wishlists/{wid}/items", headers=alice_headers, json={"name": "Bike"}).get_json()["item"]
    assert [e["item"]["item_id"] for e in events_named(bob_sc, "item_added")] == [item["item_id"]]
    # The actor's own session gets the echo too
    assert [e["item"]["item_id"] for e in events_named(alice_sc, "item_added")] == [item["item_id"]]

    resp = client.post(f"/api/wishlists/{wid}/items/{item['item_id']}/claim", headers=bob_headers)
    assert resp.status_code == 200
    claimed = events_named(alice_sc, "item_claimed")
    assert claimed[0]["item"]["status"] == "claimed"
    assert claimed[0]["item"]["claimed_by"]["user_id"] == bob_user["user_id"]
    bob_sc.get_received()

    resp = client.post(f"/api/wishlists/{wid}/items/{item['item_id']}/claim", headers=carol_headers)
    assert resp.status_code == 409
    assert alice_sc.get_received() == []
    assert bob_sc.get_received() == []


def test_comment_and_reaction_events(client, socket_for, alice, bob, shared_wishlist):
    _, alice_headers = alice
    bob_user, bob_headers = bob
    wid = shared_wishlist["wishlist_id"]
    item = client.post(f"/api/wishlists/{wid}/items", headers=alice_headers, json={"name": "Bike"}).get_json()["item"]
    alice_sc = _joined(socket_for, alice_headers, wid)
    base = f"/api/wishlists/{wid}/items/{item['item_id']}"

    comment = client.post(f"{base}/comments", headers=bob_headers, json={"text": "Blue?"}).get_json()["comment"]
    client.post(f"{base}/reactions", headers=bob_headers, json={"emoji": "🔥"})
    client.delete(f"{base}/reactions", headers=bob_headers)
    client.delete(f"{base}/comments/{comment['comment_id']}", headers=bob_headers)

    received = alice_sc.get_received()
    assert [e["name"] for e in received] == [
        "comment_added", "reaction_updated", "reaction_removed", "comment_deleted",
    ]
    assert received[0]["args"][0]["comment"]["comment_id"] == comment["comment_id"]
    assert received[1]["args"][0]["reaction"]["emoji"] == "🔥"
    assert received[2]["args"][0]["user_id"] == bob_user["user_id"]
    assert received[3]["args"][0]["comment_id"] == comment["comment_id"]


def test_invite_and_wishlist_update_are_broadcast(client, socket_for, alice, bob, wishlist):
    alice_user, alice_headers = alice
    bob_user, _ = bob
    wid = wishlist["wishlist_id"]
    alice_sc = _joined(socket_for, alice_headers, wid)

    resp = client.post(f"/api/wishlists/{wid}/invite", headers=alice_headers, json={"email": "bob@example.com"})
    assert resp.status_code == 200
    invited = events_named(alice_sc, "member_invited")
    assert len(invited) == 1
    assert invited[0]["member"]["user_id"] == bob_user["user_id"]
    assert [m["user_id"] for m in invited[0]["wishlist"]["members"]] == [bob_user["user_id"]]
    assert invited[0]["actor_id"] == alice_user["user_id"]

    resp = client.put(f"/api/wishlists/{wid}", headers=alice_headers, json={"name": "Party"})
    assert resp.status_code == 200
    updated = events_named(alice_sc, "wishlist_updated")
    assert [e["wishlist"]["name"] for e in updated] == ["Party"]
