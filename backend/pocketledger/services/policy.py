"""Access control policy.

Decides who the caller is, which scope their reads run under, and which
profile-level privileges they hold. This is the only module that touches
the elevated (service-role) store; handlers get a ``Caller`` and a
``ScopedStore`` and nothing more.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable

import structlog
from psycopg.errors import UniqueViolation

from pocketledger.core.config import settings
from pocketledger.core.errors import Forbidden, NotFound, Unauthenticated, ValidationError
from pocketledger.db.store import ElevatedStore
from pocketledger.services.common import parse_uuid_value
from pocketledger.services.identity import IdentityProvider, serialize_identity
from pocketledger.services.scopes import Scope, StaffScope, scope_for

log = structlog.get_logger(__name__)

OWNER_EDITABLE = frozenset(
    {"full_name", "username", "avatar_url", "bio", "phone", "date_of_birth", "location", "website", "preferences"}
)
STAFF_EDITABLE = OWNER_EDITABLE | {"is_active", "is_verified"}
LOGOUT_SCOPES = ("local", "global")


@dataclass(frozen=True)
class Caller:
    user_id: str
    email: str
    scope: Scope
    session_id: str
    identity: dict[str, Any] = field(default_factory=dict)
    profile: dict[str, Any] | None = None

    @property
    def is_staff(self) -> bool:
        return isinstance(self.scope, StaffScope)


def profile_fields(data: dict[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    """Keep the editable profile keys of ``data``; ``is_staff`` never survives."""
    fields = {key: value for key, value in data.items() if key in allowed}
    if "full_name" in fields:
        full_name = (fields["full_name"] or "").strip()
        if not full_name:
            raise ValidationError("full_name cannot be empty")
        fields["full_name"] = full_name
    if "username" in fields:
        fields["username"] = (fields["username"] or "").strip() or None
    if "preferences" in fields and fields["preferences"] is None:
        fields["preferences"] = {}
    if "preferences" in fields and not isinstance(fields["preferences"], dict):
        raise ValidationError("preferences must be an object")
    for flag in ("is_active", "is_verified"):
        if flag in fields and not isinstance(fields[flag], bool):
            raise ValidationError(f"{flag} must be a boolean")
    return fields


class AccessPolicy:
    def __init__(
        self,
        connect: Callable[[], Any],
        identity: IdentityProvider | None = None,
        store_factory: Callable[[Any], ElevatedStore] = ElevatedStore,
    ) -> None:
        self._connect = connect
        self._store_factory = store_factory
        self.identity = identity or IdentityProvider(
            access_ttl=settings.access_token_ttl,
            refresh_ttl=settings.refresh_token_ttl,
            password_min_len=settings.password_min_len,
        )

    @contextmanager
    def _elevated(self):
        with self._connect() as conn, conn.cursor() as cur:
            yield conn, cur, self._store_factory(cur)

    # Callers

    def resolve_caller(self, token: str | None) -> Caller:
        if not token:
            raise Unauthenticated("Missing bearer token")
        with self._elevated() as (_, cur, store):
            identity = self.identity.authenticate(cur, token)
            profile = store.get_profile(identity["id"])
        if profile is not None and not profile.get("is_active", True):
            raise Forbidden("Account is disabled")
        is_staff = bool(profile and profile.get("is_staff"))
        return Caller(
            user_id=identity["id"],
            email=identity["email"],
            scope=scope_for(identity["id"], is_staff),
            session_id=identity["session_id"],
            identity=serialize_identity(identity),
            profile=profile,
        )

    @staticmethod
    def require_staff(caller: Caller, detail: str = "Forbidden (staff only)") -> None:
        if not caller.is_staff:
            raise Forbidden(detail)

    # Sessions

    def _session_payload(self, store: ElevatedStore, session: dict, identity: dict) -> dict[str, Any]:
        profile = store.get_profile(identity["id"])
        if profile is not None and not profile.get("is_active", True):
            raise Forbidden("Account is disabled")
        payload = {key: value for key, value in session.items() if key != "session_id"}
        payload.update({"user": identity, "profile": profile})
        return payload

    def sign_in(self, email: str, password: str) -> dict[str, Any]:
        with self._elevated() as (conn, cur, store):
            try:
                session, identity = self.identity.sign_in(cur, email, password)
                payload = self._session_payload(store, session, identity)
            except Unauthenticated:
                conn.rollback()
                log.info("sign_in_failed", email=(email or "").strip().lower())
                raise
            except Forbidden:
                conn.rollback()
                raise
            if payload["profile"] is not None:
                store.touch_last_login(identity["id"])
            conn.commit()
        log.info("signed_in", user_id=identity["id"])
        return payload

    def refresh(self, refresh_token: str) -> dict[str, Any]:
        with self._elevated() as (conn, cur, store):
            session, identity = self.identity.refresh(cur, refresh_token)
            payload = self._session_payload(store, session, identity)
            conn.commit()
        return payload

    def sign_out(self, caller: Caller, scope: str = "local", target_user_id: str | None = None) -> dict[str, Any]:
        if scope not in LOGOUT_SCOPES:
            raise ValidationError("scope must be 'local' or 'global'")
        target = parse_uuid_value(target_user_id, "user_id") if target_user_id else caller.user_id
        if target != caller.user_id:
            self.require_staff(caller, "Insufficient permissions")
        # Another user's sessions are unknown to the caller, so those are all revoked.
        session_id = caller.session_id if scope == "local" and target == caller.user_id else None
        with self._elevated() as (conn, cur, _):
            revoked = self.identity.revoke(cur, target, session_id)
            conn.commit()
        log.info("signed_out", user_id=target, by=caller.user_id, scope=scope, revoked=revoked)
        return {"user_id": target, "scope": scope, "revoked_sessions": revoked}

    # Profiles

    def register(self, data: dict[str, Any]) -> dict[str, Any]:
        full_name = (data.get("full_name") or "").strip()
        if not full_name:
            raise ValidationError("full_name required")
        fields = profile_fields(data, OWNER_EDITABLE)
        fields["full_name"] = full_name
        fields.setdefault("preferences", {})

        with self._elevated() as (conn, cur, store):
            try:
                identity = self.identity.create_identity(cur, data.get("email"), data.get("password"))
                fields["email"] = identity["email"]
                profile = store.upsert_profile(identity["id"], fields)
                conn.commit()
            except UniqueViolation:
                conn.rollback()
                raise ValidationError("User already exists")
            except ValidationError:
                conn.rollback()
                raise
        log.info("user_registered", user_id=profile["id"])
        return profile

    def read_profiles(self, caller: Caller) -> list[dict[str, Any]] | dict[str, Any]:
        """Every profile for staff, the caller's own profile otherwise."""
        with self._elevated() as (_, _cur, store):
            if caller.is_staff:
                return store.list_profiles()
            profile = store.get_profile(caller.user_id)
        if profile is None:
            raise NotFound("Profile not found")
        return profile

    def update_profile(self, caller: Caller, data: dict[str, Any]) -> dict[str, Any]:
        target = parse_uuid_value(data["id"], "id") if data.get("id") else caller.user_id
        if target != caller.user_id:
            self.require_staff(caller, "Insufficient permissions")
        fields = profile_fields(data, STAFF_EDITABLE if caller.is_staff else OWNER_EDITABLE)
        if not fields:
            raise ValidationError("No profile fields to update")
        with self._elevated() as (conn, _cur, store):
            try:
                updated = store.update_profile(target, fields)
            except UniqueViolation:
                conn.rollback()
                raise ValidationError("username already taken")
            if updated is None:
                raise NotFound("Profile not found")
            conn.commit()
        return updated

    def change_staff(self, caller: Caller, target_user_id: Any, is_staff: Any) -> dict[str, Any]:
        self.require_staff(caller)
        target = parse_uuid_value(target_user_id, "target_user_id")
        if not isinstance(is_staff, bool):
            raise ValidationError("is_staff must be a boolean")
        with self._elevated() as (conn, _cur, store):
            updated = store.set_staff(target, is_staff)
            if updated is None:
                raise NotFound("User not found")
            conn.commit()
        log.info("staff_flag_changed", target=target, is_staff=is_staff, by=caller.user_id)
        return updated
