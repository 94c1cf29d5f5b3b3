import json
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from reminder_bell.jobs.authorize_job import run_authorize
from reminder_bell.services.calendar.oauth_service import (
    GOOGLE_TOKEN_URL,
    GoogleOAuthError,
    GoogleOAuthService,
    StoredToken,
)


@pytest.fixture
def oauth_service(tmp_path):
    credentials = tmp_path / "credentials.json"
    credentials.write_text(
        json.dumps(
            {
                "installed": {
                    "client_id": "client-id",
                    "client_secret": "client-secret",
                    "redirect_uris": ["http://localhost"],
                }
            }
        ),
        encoding="utf-8",
    )
    return GoogleOAuthService(credentials, tmp_path / "token.json")


def _store(service: GoogleOAuthService, expires_at: datetime, refresh_token="refresh-1"):
    service.save_token(
        StoredToken(access_token="old-access", refresh_token=refresh_token, expires_at=expires_at)
    )


def test_generate_oauth_url_requests_offline_readonly_access(oauth_service):
    url = oauth_service.generate_oauth_url()

    params = parse_qs(urlparse(url).query)
    assert params["client_id"] == ["client-id"]
    assert params["scope"] == ["https://www.googleapis.com/auth/calendar.readonly"]
    assert params["access_type"] == ["offline"]


@pytest.mark.asyncio
async def test_valid_token_is_used_without_refresh(oauth_service, httpx_mock):
    _store(oauth_service, datetime.now(UTC) + timedelta(hours=1))

    assert await oauth_service.get_access_token() == "old-access"
    assert httpx_mock.get_requests() == []


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_saved(oauth_service, httpx_mock):
    _store(oauth_service, datetime.now(UTC) - timedelta(minutes=1))
    httpx_mock.add_response(
        method="POST",
        url=GOOGLE_TOKEN_URL,
        json={"access_token": "new-access", "expires_in": 3600, "token_type": "Bearer"},
    )

    token = await oauth_service.get_access_token()

    assert token == "new-access"
    saved = oauth_service.load_token()
    assert saved.access_token == "new-access"
    assert saved.refresh_token == "refresh-1"
    assert saved.needs_refresh() is False

    body = parse_qs(httpx_mock.get_requests()[0].content.decode())
    assert body["grant_type"] == ["refresh_token"]
    assert body["refresh_token"] == ["refresh-1"]


@pytest.mark.asyncio
async def test_revoked_refresh_token_maps_error(oauth_service, httpx_mock):
    _store(oauth_service, datetime.now(UTC) - timedelta(minutes=1))
    httpx_mock.add_response(
        method="POST",
        url=GOOGLE_TOKEN_URL,
        status_code=400,
        json={"error": "invalid_grant", "error_description": "Token has been revoked."},
    )

    with pytest.raises(GoogleOAuthError) as exc:
        await oauth_service.get_access_token()

    assert exc.value.error_code == "invalid_grant"
    assert "authorize" in str(exc.value)


@pytest.mark.asyncio
async def test_expired_token_without_refresh_token(oauth_service):
    _store(oauth_service, datetime.now(UTC) - timedelta(minutes=1), refresh_token=None)

    with pytest.raises(GoogleOAuthError) as exc:
        await oauth_service.get_access_token()

    assert exc.value.error_code == "no_refresh_token"


@pytest.mark.asyncio
async def test_missing_token_file(oauth_service):
    with pytest.raises(GoogleOAuthError) as exc:
        await oauth_service.get_access_token()

    assert exc.value.error_code == "no_token"


@pytest.mark.asyncio
async def test_authorize_exchanges_code_and_saves_token(oauth_service, httpx_mock):
    httpx_mock.add_response(
        method="POST",
        url=GOOGLE_TOKEN_URL,
        json={"access_token": "first-access", "refresh_token": "refresh-9", "expires_in": 3600},
    )

    await run_authorize(oauth_service, prompt=lambda _: "  auth-code \n")

    saved = oauth_service.load_token()
    assert saved.refresh_token == "refresh-9"
    body = parse_qs(httpx_mock.get_requests()[0].content.decode())
    assert body["code"] == ["auth-code"]
    assert body["grant_type"] == ["authorization_code"]


@pytest.mark.asyncio
async def test_authorize_rejects_empty_code(oauth_service):
    with pytest.raises(GoogleOAuthError):
        await run_authorize(oauth_service, prompt=lambda _: "   ")

    assert not oauth_service.token_file.exists()
