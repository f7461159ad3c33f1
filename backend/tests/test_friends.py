from models import Friendship


def test_send_and_accept_friend_request(client, auth_headers, other_headers, test_user, other_user, db_session):
    response = client.post("/friends", headers=auth_headers, json={"friend_id": other_user.id})
    assert response.status_code == 200
    assert response.json()["status"] == "pending"

    # Bob sees the incoming request
    response = client.get("/friends/requests", headers=other_headers)
    assert response.status_code == 200
    requests = response.json()
    assert len(requests) == 1
    assert requests[0]["user"]["id"] == test_user.id

    response = client.post(f"/friends/{test_user.id}/accept", headers=other_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    # Both sides see the friendship
    alice_friends = client.get("/friends", headers=auth_headers).json()
    bob_friends = client.get("/friends", headers=other_headers).json()
    assert [f["friend"]["id"] for f in alice_friends] == [other_user.id]
    assert [f["friend"]["id"] for f in bob_friends] == [test_user.id]
    assert db_session.query(Friendship).filter(Friendship.status == "accepted").count() == 2


def test_mutual_requests_become_friends(client, auth_headers, other_headers, test_user, other_user):
    client.post("/friends", headers=auth_headers, json={"friend_id": other_user.id})
    response = client.post("/friends", headers=other_headers, json={"friend_id": test_user.id})

    assert response.status_code == 200
    assert response.json()["status"] == "accepted"
    assert len(client.get("/friends", headers=auth_headers).json()) == 1


def test_duplicate_request_is_conflict(client, auth_headers, other_user):
    client.post("/friends", headers=auth_headers, json={"friend_id": other_user.id})
    response = client.post("/friends", headers=auth_headers, json={"friend_id": other_user.id})

    assert response.status_code == 409
    assert response.json()["code"] == "friendship_exists"


def test_cannot_befriend_self(client, auth_headers, test_user):
    response = client.post("/friends", headers=auth_headers, json={"friend_id": test_user.id})
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_friend_request"


def test_request_to_unknown_user(client, auth_headers):
    response = client.post("/friends", headers=auth_headers, json={"friend_id": "ghost"})
    assert response.status_code == 404


def test_accept_without_request(client, other_headers, test_user):
    response = client.post(f"/friends/{test_user.id}/accept", headers=other_headers)
    assert response.status_code == 404


def test_block_removes_friendship(client, auth_headers, other_headers, test_user, other_user):
    client.post("/friends", headers=auth_headers, json={"friend_id": other_user.id})
    client.post(f"/friends/{test_user.id}/accept", headers=other_headers)

    response = client.post(f"/friends/{other_user.id}/block", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "blocked"

    assert client.get("/friends", headers=auth_headers).json() == []
    assert client.get("/friends", headers=other_headers).json() == []

    # Blocked users cannot send new requests
    response = client.post("/friends", headers=other_headers, json={"friend_id": test_user.id})
    assert response.status_code == 400
