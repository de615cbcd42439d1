"""Identity provider: password identities and opaque bearer sessions.

Tokens are random strings handed to the client once; only their SHA-256
digests are stored. An access token resolves to exactly one identity until
it expires or its session is revoked.
"""

import hashlib
import re
import secrets
from datetime import timedelta
from typing import Any

from passlib.hash import bcrypt

from pocketledger.core.errors import Unauthenticated, ValidationError
from pocketledger.services.common import now_utc

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _new_token(kind: str) -> tuple[str, str]:
    plain = f"pl{kind}_{secrets.token_urlsafe(32)}"
    return plain, hash_token(plain)


def normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if not value:
        raise ValidationError("email required")
    if not EMAIL_RE.fullmatch(value):
        raise ValidationError("Invalid email")
    return value


def check_password(password: str | None, min_len: int) -> str:
    value = password or ""
    if not value.strip():
        raise ValidationError("password required")
    if len(value) < min_len:
        raise ValidationError(f"Password too short (min {min_len})")
    if len(value.encode("utf-8")) > 72:
        raise ValidationError("Password too long (max 72 bytes)")
    return value


def serialize_identity(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "email": row["email"],
        "email_confirmed_at": row.get("email_confirmed_at"),
        "last_sign_in_at": row.get("last_sign_in_at"),
        "created_at": row.get("created_at"),
        "updated_at": row.get("updated_at"),
    }


class IdentityProvider:
    def __init__(self, access_ttl: int, refresh_ttl: int, password_min_len: int) -> None:
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.password_min_len = password_min_len

    def create_identity(self, cur, email: str, password: str) -> dict[str, Any]:
        email = normalize_email(email)
        password = check_password(password, self.password_min_len)
        # Accounts created through the API are confirmed immediately.
        cur.execute(
            """
            INSERT INTO auth.identities (email, password_hash, email_confirmed_at)
            VALUES (%s, %s, %s)
            RETURNING id::text AS id, email, email_confirmed_at, last_sign_in_at, created_at, updated_at
            """,
            (email, bcrypt.hash(password), now_utc()),
        )
        return cur.fetchone()

    def _open_session(self, cur, user_id: str) -> dict[str, Any]:
        access, access_hash = _new_token("at")
        refresh, refresh_hash = _new_token("rt")
        issued = now_utc()
        cur.execute(
            """
            INSERT INTO auth.sessions (user_id, access_hash, refresh_hash, access_expires_at, refresh_expires_at)
            VALUES (%s::uuid, %s, %s, %s, %s)
            RETURNING session_id::text AS session_id
            """,
            (
                user_id,
                access_hash,
                refresh_hash,
                issued + timedelta(seconds=self.access_ttl),
                issued + timedelta(seconds=self.refresh_ttl),
            ),
        )
        session_id = cur.fetchone()["session_id"]
        return {
            "session_id": session_id,
            "token_type": "bearer",
            "access_token": access,
            "refresh_token": refresh,
            "expires_in": self.access_ttl,
            "expires_at": int((issued + timedelta(seconds=self.access_ttl)).timestamp()),
        }

    def sign_in(self, cur, email: str, password: str) -> tuple[dict[str, Any], dict[str, Any]]:
        email = (email or "").strip().lower()
        cur.execute(
            """
            SELECT id::text AS id, email, password_hash, email_confirmed_at, last_sign_in_at, created_at, updated_at
            FROM auth.identities
            WHERE email=%s
            """,
            (email,),
        )
        row = cur.fetchone()
        if not row or not bcrypt.verify(password or "", row["password_hash"]):
            raise Unauthenticated("Invalid login credentials")
        cur.execute("UPDATE auth.identities SET last_sign_in_at=%s WHERE id=%s::uuid", (now_utc(), row["id"]))
        return self._open_session(cur, row["id"]), serialize_identity(row)

    def authenticate(self, cur, token: str) -> dict[str, Any]:
        cur.execute(
            """
            SELECT s.session_id::text AS session_id,
                   i.id::text AS id,
                   i.email,
                   i.email_confirmed_at,
                   i.last_sign_in_at,
                   i.created_at,
                   i.updated_at
            FROM auth.sessions s
            JOIN auth.identities i ON i.id=s.user_id
            WHERE s.access_hash=%s AND s.revoked_at IS NULL AND s.access_expires_at > %s
            """,
            (hash_token(token), now_utc()),
        )
        row = cur.fetchone()
        if not row:
            raise Unauthenticated("Invalid or expired token")
        return row

    def refresh(self, cur, refresh_token: str) -> tuple[dict[str, Any], dict[str, Any]]:
        cur.execute(
            """
            UPDATE auth.sessions
            SET revoked_at=%s
            WHERE refresh_hash=%s AND revoked_at IS NULL AND refresh_expires_at > %s
            RETURNING user_id::text AS user_id
            """,
            (now_utc(), hash_token(refresh_token or ""), now_utc()),
        )
        row = cur.fetchone()
        if not row:
            raise Unauthenticated("Invalid or expired refresh token")
        cur.execute(
            """
            SELECT id::text AS id, email, email_confirmed_at, last_sign_in_at, created_at, updated_at
            FROM auth.identities
            WHERE id=%s::uuid
            """,
            (row["user_id"],),
        )
        identity = cur.fetchone()
        return self._open_session(cur, row["user_id"]), serialize_identity(identity)

    def revoke(self, cur, user_id: str, session_id: str | None = None) -> int:
        """Revoke one session, or every live session of ``user_id`` when ``session_id`` is None."""
        sql = "UPDATE auth.sessions SET revoked_at=%s WHERE user_id=%s::uuid AND revoked_at IS NULL"
        params: list[Any] = [now_utc(), user_id]
        if session_id:
            sql += " AND session_id=%s::uuid"
            params.append(session_id)
        cur.execute(sql, params)
        return cur.rowcount
