"""Tests for review source endpoints."""

from fastapi.testclient import TestClient

from tests.helpers import make_brand, make_user


def _payload(external_id: str = "place-1", **overrides) -> dict:
    payload = {
        "platform_type": "GOOGLE",
        "profile_url": f"https://maps.google.com/?cid={external_id}",
        "external_profile_id": external_id,
    }
    payload.update(overrides)
    return payload


def _url(brand_id: str) -> str:
    return f"/api/v1/brands/{brand_id}/review-sources"


class TestCreateSource:
    def test_create_source(self, client: TestClient, headers, caller_brand):
        response = client.post(_url(caller_brand.id), json=_payload(), headers=headers)

        assert response.status_code == 201
        data = response.json()
        assert data["brand_id"] == caller_brand.id
        assert data["source_type"] == "GOOGLE"
        assert data["auth_method"] == "SCRAPING"
        assert data["is_active"] is True
        assert data["next_scheduled_sync_at"] is not None
        assert "credentials_encrypted" not in data

    def test_free_plan_quota(self, client: TestClient, headers, caller_brand):
        assert client.post(_url(caller_brand.id), json=_payload("a"), headers=headers).status_code == 201

        response = client.post(_url(caller_brand.id), json=_payload("b"), headers=headers)

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "E-3001"
        assert body["details"]["currentCount"] == 1
        assert body["details"]["maxAllowed"] == 1

    def test_deleting_frees_the_slot(self, client: TestClient, headers, caller_brand):
        source_id = client.post(_url(caller_brand.id), json=_payload("a"), headers=headers).json()["id"]
        assert client.delete(f"{_url(caller_brand.id)}/{source_id}", headers=headers).status_code == 200

        response = client.post(_url(caller_brand.id), json=_payload("b"), headers=headers)

        assert response.status_code == 201

    def test_duplicate_profile(self, client: TestClient, test_db, clock):
        premium = make_user(test_db, email="premium@example.com", plan_type="PREMIUM", clock=clock)
        brand = make_brand(test_db, premium, clock=clock)
        headers = {"X-User-Id": premium.id}
        assert client.post(_url(brand.id), json=_payload(), headers=headers).status_code == 201

        response = client.post(_url(brand.id), json=_payload(), headers=headers)

        assert response.status_code == 409
        assert response.json()["code"] == "E-3002"

    def test_foreign_brand(self, client: TestClient, test_db, headers, clock):
        stranger = make_user(test_db, email="stranger@example.com", clock=clock)
        theirs = make_brand(test_db, stranger, clock=clock)

        response = client.post(_url(theirs.id), json=_payload(), headers=headers)

        assert response.status_code == 403
        assert response.json()["code"] == "E-5001"

    def test_unknown_platform(self, client: TestClient, headers, caller_brand):
        response = client.post(
            _url(caller_brand.id), json=_payload(platform_type="MYSPACE"), headers=headers
        )
        assert response.status_code == 422

    def test_api_source_with_credentials(self, client: TestClient, headers, caller_brand):
        response = client.post(
            _url(caller_brand.id),
            json=_payload(auth_method="API", credentials={"api_key": "secret"}),
            headers=headers,
        )

        assert response.status_code == 201
        assert "secret" not in response.text


class TestReadUpdateDelete:
    def test_list_and_get(self, client: TestClient, headers, caller_brand):
        source_id = client.post(_url(caller_brand.id), json=_payload(), headers=headers).json()["id"]

        listing = client.get(_url(caller_brand.id), headers=headers).json()
        assert listing["total"] == 1
        assert listing["sources"][0]["id"] == source_id

        single = client.get(f"{_url(caller_brand.id)}/{source_id}", headers=headers)
        assert single.status_code == 200
        assert single.json()["external_profile_id"] == "place-1"

    def test_get_missing_source(self, client: TestClient, headers, caller_brand):
        response = client.get(f"{_url(caller_brand.id)}/missing", headers=headers)
        assert response.status_code == 404

    def test_deactivate(self, client: TestClient, headers, caller_brand):
        source_id = client.post(_url(caller_brand.id), json=_payload(), headers=headers).json()["id"]

        response = client.patch(
            f"{_url(caller_brand.id)}/{source_id}", json={"is_active": False}, headers=headers
        )

        assert response.status_code == 200
        assert response.json()["is_active"] is False

    def test_delete(self, client: TestClient, headers, caller_brand):
        source_id = client.post(_url(caller_brand.id), json=_payload(), headers=headers).json()["id"]

        response = client.delete(f"{_url(caller_brand.id)}/{source_id}", headers=headers)

        assert response.json() == {"status": "deleted", "source_id": source_id}
        assert client.get(_url(caller_brand.id), headers=headers).json()["total"] == 0
