import pytest
from unittest.mock import MagicMock
from fastapi import Request, HTTPException
from app.shared.core.auth import get_current_user, decode_jwt, CurrentUser, require_organization
from uuid import uuid4
import jwt
from datetime import datetime, timezone, timedelta

from conftest import make_token


def _credentials(token: str):
    creds = MagicMock()
    creds.credentials = token
    return creds


def test_decode_jwt_success():
    org_id = uuid4()
    decoded = decode_jwt(make_token(org_id))
    assert decoded["organization_id"] == str(org_id)


def test_decode_jwt_expired():
    token = make_token(uuid4(), exp=(datetime.now(timezone.utc) - timedelta(hours=1)).timestamp())

    with pytest.raises(HTTPException) as exc:
        decode_jwt(token)
    assert exc.value.status_code == 401
    assert "expired" in exc.value.detail


def test_decode_jwt_wrong_secret():
    token = jwt.encode({"sub": "u", "aud": "authenticated"}, "another-secret", algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        decode_jwt(token)
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_get_current_user_success():
    org_id = uuid4()
    mock_request = MagicMock(spec=Request)
    mock_request.state = MagicMock()

    user = await get_current_user(mock_request, _credentials(make_token(org_id, sub="user-9")))

    assert user.id == "user-9"
    assert user.organization_id == org_id
    assert user.email == "finops@example.com"
    assert mock_request.state.organization_id == org_id


@pytest.mark.asyncio
async def test_get_current_user_missing_credentials():
    with pytest.raises(HTTPException) as exc:
        await get_current_user(MagicMock(spec=Request), None)
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_get_current_user_malformed_organization_claim():
    mock_request = MagicMock(spec=Request)
    mock_request.state = MagicMock()
    with pytest.raises(HTTPException) as exc:
        await get_current_user(mock_request, _credentials(make_token(organization_id="not-a-uuid")))
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_get_current_user_without_subject():
    mock_request = MagicMock(spec=Request)
    mock_request.state = MagicMock()
    with pytest.raises(HTTPException) as exc:
        await get_current_user(mock_request, _credentials(make_token(uuid4(), sub="")))
    assert exc.value.status_code == 401


def test_require_organization():
    org_id = uuid4()
    assert require_organization(CurrentUser(id="u", organization_id=org_id)) == org_id

    with pytest.raises(HTTPException) as exc:
        require_organization(CurrentUser(id="u"))
    assert exc.value.status_code == 403
