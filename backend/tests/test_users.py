from auth import create_access_token
from conftest import make_user
from models import User


def test_read_me(client, auth_headers, test_user):
    response = client.get("/users/me", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == test_user.id
    assert data["full_name"] == "Alice"


def test_first_request_creates_user_from_token(client, db_session):
    token = create_access_token(data={"sub": "new-user", "name": "Dev", "email": "dev@example.com"})

    response = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["email"] == "dev@example.com"
    assert db_session.query(User).filter(User.id == "new-user").count() == 1


def test_token_email_owned_by_another_user_is_not_copied(client, db_session):
    make_user(db_session, "user-erin", "Erin", email="shared@example.com")
    token = create_access_token(data={"sub": "user-frank", "name": "Frank", "email": "shared@example.com"})

    response = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["full_name"] == "Frank"
    assert response.json()["email"] is None
    assert db_session.query(User).filter(User.email == "shared@example.com").one().id == "user-erin"


def test_invalid_token_rejected(client):
    response = client.get("/users/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_update_phone_number(client, db_session):
    user = User(id="user-dan", full_name="Dan")
    db_session.add(user)
    db_session.commit()
    headers = {"Authorization": f"Bearer {create_access_token(data={'sub': 'user-dan'})}"}

    response = client.patch("/users/me", headers=headers, json={"phone_number": "98765-43210"})

    assert response.status_code == 200
    assert response.json()["phone_number"] == "9876543210"


def test_phone_number_must_be_unique(client, auth_headers, other_user):
    response = client.patch("/users/me", headers=auth_headers, json={"phone_number": other_user.phone_number})
    assert response.status_code == 409
    assert response.json()["code"] == "phone_number_taken"


def test_invalid_phone_number(client, auth_headers):
    response = client.patch("/users/me", headers=auth_headers, json={"phone_number": "12ab"})
    assert response.status_code == 422


def test_search_by_phone_number(client, auth_headers, other_user):
    response = client.get(f"/users/search/{other_user.phone_number}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["id"] == other_user.id

    response = client.get("/users/search/0000000000", headers=auth_headers)
    assert response.status_code == 404
