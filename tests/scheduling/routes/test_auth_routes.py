import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from scheduling.auth import jwt_handler
from scheduling.auth.dependencies import get_current_user
from scheduling.core import config
from scheduling.routes.auth_routes import me


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_access_token_round_trips_user_id_and_role() -> None:
    token = jwt_handler.create_access_token(42, role='doctor')

    payload = jwt_handler.decode_access_token(token)

    assert payload['sub'] == '42'
    assert payload['role'] == 'doctor'


def test_get_current_user_resolves_token_subject(db_session, doctor) -> None:
    token = jwt_handler.create_access_token(doctor.id)

    assert get_current_user(_credentials(token), db=db_session).id == doctor.id


def test_get_current_user_rejects_garbage_token(db_session) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(_credentials('not-a-token'), db=db_session)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_get_current_user_rejects_expired_token(db_session, doctor) -> None:
    token = jwt_handler.create_access_token(doctor.id, expires_minutes=-5)

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(_credentials(token), db=db_session)

    assert exception_info.value.status_code == 401


def test_get_current_user_rejects_non_numeric_subject(db_session) -> None:
    token = jwt.encode({'sub': 'someone@clinic.test'}, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(_credentials(token), db=db_session)

    assert exception_info.value.detail == 'Invalid token subject'


def test_get_current_user_rejects_unknown_user(db_session) -> None:
    token = jwt_handler.create_access_token(999)

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(_credentials(token), db=db_session)

    assert exception_info.value.detail == 'User not found'


def test_me_returns_profile(doctor) -> None:
    assert me(current_user=doctor) == {
        'id': doctor.id,
        'email': 'doctor@clinic.test',
        'role': 'doctor',
        'timezone': 'UTC',
    }
