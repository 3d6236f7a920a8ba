import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from clinic_backend.auth import jwt_handler
from clinic_backend.auth.dependencies import get_current_doctor, get_current_user


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_access_token_round_trip() -> None:
    token = jwt_handler.create_access_token(42, 'doctor')

    payload = jwt_handler.decode_access_token(token)

    assert payload['sub'] == '42'
    assert payload['role'] == 'doctor'
    assert payload['exp'] > payload['iat']


def test_get_current_user_resolves_token_subject(clinic_db, make_user) -> None:
    patient = make_user('patient', 'Pat One')
    token = jwt_handler.create_access_token(patient.id, 'patient')

    user = get_current_user(credentials=_credentials(token), db=clinic_db)

    assert user.id == patient.id


@pytest.mark.parametrize('token', ['not-a-jwt', ''])
def test_get_current_user_rejects_garbage_tokens(clinic_db, token: str) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_credentials(token), db=clinic_db)

    assert exception_info.value.status_code == 401


def test_get_current_user_rejects_unknown_user(clinic_db) -> None:
    token = jwt_handler.create_access_token(12345, 'patient')

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_credentials(token), db=clinic_db)

    assert exception_info.value.detail == 'User not found'


def test_get_current_doctor_rejects_patients(clinic_db, make_user) -> None:
    patient = make_user('patient', 'Pat One')
    doctor = make_user('doctor', 'Dr Ada')

    assert get_current_doctor(current_user=doctor) is doctor
    with pytest.raises(HTTPException) as exception_info:
        get_current_doctor(current_user=patient)

    assert exception_info.value.status_code == 403
