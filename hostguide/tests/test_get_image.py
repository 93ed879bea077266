"""Tests for the get-image function (signed URLs for private page images)."""

from urllib.parse import parse_qs, urlparse

import pytest

from hostguide.tests.conftest import IMAGE_A, IMAGE_B, OWNER_A, OWNER_B


@pytest.fixture
def beach(backend):
    return backend.create_space(OWNER_A["id"], "Beach House")


@pytest.fixture
def cabin(backend):
    return backend.create_space(OWNER_B["id"], "Mountain Cabin")


def _expires(url: str) -> int:
    return int(parse_qs(urlparse(url).query)["X-Amz-Expires"][0])


class TestPreflight:
    def test_options_returns_204_with_cors(self, issuer_client):
        resp = issuer_client.options("/")
        assert resp.status_code == 204
        assert resp.headers["access-control-allow-origin"] == "*"
        assert resp.headers["access-control-allow-methods"] == "GET, OPTIONS"
        assert "x-access-token" in resp.headers["access-control-allow-headers"]

    def test_options_on_any_path(self, issuer_client):
        resp = issuer_client.options(
            "/anything",
            headers={"Origin": "https://guest.example", "Access-Control-Request-Method": "GET"},
        )
        assert resp.status_code == 204


class TestValidation:
    def test_missing_path_returns_400(self, issuer_client, beach):
        resp = issuer_client.get("/", params={"token": beach.access_token})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing image path"}

    def test_missing_path_and_token_returns_400(self, issuer_client):
        resp = issuer_client.get("/")
        assert resp.status_code == 400

    def test_missing_token_returns_401(self, issuer_client):
        resp = issuer_client.get("/", params={"path": IMAGE_A})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Missing access token"}

    def test_blank_token_returns_401(self, issuer_client):
        resp = issuer_client.get("/", params={"path": IMAGE_A, "token": "  "})
        assert resp.status_code == 401

    @pytest.mark.parametrize("bad_path", ["beach.png", "a/b/c.png", "../x.png", "user-aaaa/..", "/beach.png"])
    def test_malformed_path_returns_400(self, issuer_client, beach, bad_path):
        resp = issuer_client.get("/", params={"path": bad_path, "token": beach.access_token})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid image path"}

    def test_errors_carry_cors_headers(self, issuer_client):
        resp = issuer_client.get("/", params={"path": IMAGE_A})
        assert resp.headers["access-control-allow-origin"] == "*"


class TestAccess:
    def test_unknown_token_returns_403(self, issuer_client, beach):
        resp = issuer_client.get("/", params={"path": IMAGE_A, "token": "not-a-real-token"})
        assert resp.status_code == 403
        assert resp.json() == {"error": "Invalid token or access denied"}

    def test_token_for_other_owner_returns_same_403(self, issuer_client, beach, cabin):
        wrong_owner = issuer_client.get("/", params={"path": IMAGE_B, "token": beach.access_token})
        unknown = issuer_client.get("/", params={"path": IMAGE_B, "token": "nope"})
        assert wrong_owner.status_code == 403
        assert wrong_owner.json() == unknown.json()

    def test_valid_token_returns_signed_url(self, issuer_client, beach):
        resp = issuer_client.get("/", params={"path": IMAGE_A, "token": beach.access_token})
        assert resp.status_code == 200
        url = resp.json()["signedUrl"]
        assert url.startswith("https://")
        assert "beach.png" in url
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_signed_url_valid_for_one_hour(self, issuer_client, beach):
        resp = issuer_client.get("/", params={"path": IMAGE_A, "token": beach.access_token})
        assert _expires(resp.json()["signedUrl"]) == 3600

    def test_token_in_header(self, issuer_client, beach):
        resp = issuer_client.get(
            "/",
            params={"path": IMAGE_A},
            headers={"x-access-token": beach.access_token},
        )
        assert resp.status_code == 200
        assert "signedUrl" in resp.json()

    def test_query_token_wins_over_header(self, issuer_client, beach):
        resp = issuer_client.get(
            "/",
            params={"path": IMAGE_A, "token": "bogus"},
            headers={"x-access-token": beach.access_token},
        )
        assert resp.status_code == 403

    def test_deleted_space_token_is_forbidden(self, issuer_client, backend, beach):
        backend.delete_space(beach.id)
        resp = issuer_client.get("/", params={"path": IMAGE_A, "token": beach.access_token})
        assert resp.status_code == 403


class TestSigningFailures:
    def test_missing_object_returns_500(self, issuer_client, beach):
        resp = issuer_client.get(
            "/", params={"path": f"{OWNER_A['id']}/missing.png", "token": beach.access_token}
        )
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to generate signed URL"}

    def test_unexpected_error_returns_generic_500(self, issuer_client, beach, monkeypatch):
        from hostguide.functions import get_image

        def boom():
            raise RuntimeError("s3 credentials exploded")

        monkeypatch.setattr(get_image, "s3_client", boom)
        resp = issuer_client.get("/", params={"path": IMAGE_A, "token": beach.access_token})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
        assert "exploded" not in resp.text
