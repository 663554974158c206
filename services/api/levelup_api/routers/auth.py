from __future__ import annotations

from uuid import uuid4

from fastapi import APIRouter
from pydantic import BaseModel

from levelup_api.core.security import issue_token

router = APIRouter(prefix="/api/auth", tags=["auth"])


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str


@router.post("/guest", response_model=AuthResponse)
def auth_guest() -> AuthResponse:
    user_id = f"guest_{uuid4().hex}"
    return AuthResponse(access_token=issue_token(user_id, guest=True), user_id=user_id)
