from fastapi import APIRouter, Depends, Request

from pocketledger.core.config import settings
from pocketledger.models.requests import LoginRequest, RefreshRequest
from pocketledger.routers.deps import get_policy, require_caller
from pocketledger.routers.responses import success
from pocketledger.services.auth import enforce_login_rate_limit
from pocketledger.services.policy import AccessPolicy, Caller

router = APIRouter()


@router.get("/health")
def health():
    return {"ok": True}


@router.post("/login")
def login(req: Request, payload: LoginRequest, access: AccessPolicy = Depends(get_policy)):
    enforce_login_rate_limit(req, payload.email)
    session = access.sign_in(payload.email, payload.password)
    return success(session, "Login successful")


@router.post("/token/refresh")
def refresh_token(payload: RefreshRequest, access: AccessPolicy = Depends(get_policy)):
    return success(access.refresh(payload.refresh_token), "Session refreshed")


@router.get("/me")
def me(caller: Caller = Depends(require_caller)):
    return success({"user": caller.identity, "profile": caller.profile, "is_staff": caller.is_staff, "tz": settings.tz})


@router.delete("/logout")
def logout(
    scope: str = "local",
    user_id: str | None = None,
    caller: Caller = Depends(require_caller),
    access: AccessPolicy = Depends(get_policy),
):
    result = access.sign_out(caller, scope, user_id)
    return success(result, f"User logged out successfully ({result['scope']} scope)")
