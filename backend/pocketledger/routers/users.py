from fastapi import APIRouter, Depends, Request

from pocketledger.core.errors import ValidationError
from pocketledger.models.requests import AdminActionRequest, ProfileUpdateRequest, RegisterRequest
from pocketledger.routers.deps import get_policy, require_caller
from pocketledger.routers.responses import success, success_list
from pocketledger.services.auth import enforce_register_rate_limit
from pocketledger.services.policy import AccessPolicy, Caller

router = APIRouter()


@router.get("/users")
def read_users(caller: Caller = Depends(require_caller), access: AccessPolicy = Depends(get_policy)):
    profiles = access.read_profiles(caller)
    if caller.is_staff:
        return success_list(profiles, "Users listed successfully")
    return success(profiles)


@router.post("/users")
def register(req: Request, payload: RegisterRequest, access: AccessPolicy = Depends(get_policy)):
    # No bearer token required.
    enforce_register_rate_limit(req)
    profile = access.register(payload.model_dump(exclude_unset=True))
    return success(profile, "User created successfully")


@router.put("/users")
def update_user(
    payload: ProfileUpdateRequest,
    caller: Caller = Depends(require_caller),
    access: AccessPolicy = Depends(get_policy),
):
    profile = access.update_profile(caller, payload.model_dump(exclude_unset=True))
    return success(profile, "Profile updated successfully")


@router.post("/admin")
def admin_action(
    payload: AdminActionRequest,
    caller: Caller = Depends(require_caller),
    access: AccessPolicy = Depends(get_policy),
):
    if not payload.action:
        raise ValidationError("action required")

    if payload.action == "me":
        return success({"user": caller.identity, "profile": caller.profile})

    if payload.action == "change_staff":
        missing = [name for name in ("target_user_id", "is_staff") if getattr(payload, name) is None]
        if missing:
            raise ValidationError(f"Missing required parameters: {', '.join(missing)}")
        target = access.change_staff(caller, payload.target_user_id, payload.is_staff)
        return success({"target": target}, "is_staff updated successfully")

    raise ValidationError("Invalid action")
