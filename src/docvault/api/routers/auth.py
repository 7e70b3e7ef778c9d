"""Signup bridge routes."""

from fastapi import APIRouter, Depends

from ..dependencies import get_signup_bridge, get_subject_id
from ..schemas import CheckUserRequest, SignupRequest
from ...core.auth import SignupBridge

auth_router = APIRouter(prefix="/auth", tags=["Auth"])


@auth_router.post("/check-user")
def check_user(body: CheckUserRequest, bridge: SignupBridge = Depends(get_signup_bridge)) -> dict:
    return bridge.check_user(body.mobile)


@auth_router.post("/signup")
def signup(
    body: SignupRequest,
    subject_id: str = Depends(get_subject_id),
    bridge: SignupBridge = Depends(get_signup_bridge),
) -> dict:
    user = bridge.signup(subject_id, body.key, body.name)
    return {"status": "success", "uid": user.user_id}
