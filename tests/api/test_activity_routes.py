"""Tests for the activity ledger endpoints."""

from fastapi.testclient import TestClient

URL = "/api/v1/users/me/activity"


def test_new_user_has_registration_entry(client: TestClient, headers, caller):
    response = client.get(URL, headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert [a["activity_type"] for a in data["activities"]] == ["USER_REGISTERED"]
    assert data["activities"][0]["user_id"] == caller.id
    assert data["pagination"] == {
        "current_page": 0,
        "page_size": 20,
        "total_items": 1,
        "total_pages": 1,
        "has_next": False,
        "has_previous": False,
    }


def test_log_client_activity(client: TestClient, headers, clock):
    clock.advance(minutes=1)
    response = client.post(
        URL, json={"activity_type": "login", "metadata": {"device": "ios"}}, headers=headers
    )

    assert response.status_code == 201
    assert response.json()["activity_type"] == "LOGIN"
    assert response.json()["metadata"] == {"device": "ios"}

    listing = client.get(URL, headers=headers).json()
    assert [a["activity_type"] for a in listing["activities"]] == ["LOGIN", "USER_REGISTERED"]


def test_server_only_type_rejected(client: TestClient, headers):
    response = client.post(URL, json={"activity_type": "SENTIMENT_CORRECTED"}, headers=headers)

    assert response.status_code == 400
    assert response.json()["code"] == "E-2001"


def test_unknown_type_rejected(client: TestClient, headers):
    response = client.post(URL, json={"activity_type": "DANCE"}, headers=headers)
    assert response.status_code == 400


def test_pagination(client: TestClient, headers, clock):
    for _ in range(4):
        clock.advance(minutes=1)
        assert client.post(URL, json={"activity_type": "VIEW_DASHBOARD"}, headers=headers).status_code == 201

    page = client.get(URL, params={"page": 1, "size": 2}, headers=headers).json()

    assert len(page["activities"]) == 2
    assert page["pagination"]["total_items"] == 5
    assert page["pagination"]["total_pages"] == 3
    assert page["pagination"]["has_next"] is True
    assert page["pagination"]["has_previous"] is True


def test_invalid_page_size(client: TestClient, headers):
    response = client.get(URL, params={"size": 0}, headers=headers)
    assert response.status_code == 400
