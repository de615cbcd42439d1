"""In-memory doubles shared by the test modules.

Import after the test module has put the backend root on ``sys.path`` and
set ``DATABASE_URL``.
"""

import copy
import itertools
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal

from pocketledger.core.errors import Unauthenticated, ValidationError
from pocketledger.services.scopes import StaffScope

_seq = itertools.count(1)


def new_id() -> str:
    return str(uuid.uuid4())


def make_profile(email: str, full_name: str, is_staff: bool = False, is_active: bool = True) -> dict:
    return {
        "id": new_id(),
        "email": email,
        "full_name": full_name,
        "username": None,
        "bio": None,
        "is_staff": is_staff,
        "is_active": is_active,
        "is_verified": False,
        "preferences": {},
        "created_at": datetime.now(timezone.utc),
    }


class MemoryDB:
    def __init__(self) -> None:
        self.profiles: dict[str, dict] = {}
        self.categories: dict[str, dict] = {}
        self.transactions: dict[str, dict] = {}
        self.commits = 0

    def add_profile(self, profile: dict) -> dict:
        self.profiles[profile["id"]] = profile
        return profile


class FakeStore:
    """Behaves like ``ScopedStore`` over a ``MemoryDB``."""

    def __init__(self, db: MemoryDB, scope) -> None:
        self.db = db
        self.scope = scope

    @property
    def user_id(self) -> str:
        return self.scope.user_id

    def commit(self) -> None:
        self.db.commits += 1

    def _visible(self, row: dict) -> bool:
        return isinstance(self.scope, StaffScope) or row["user_id"] == self.user_id

    def _annotate(self, row: dict) -> dict:
        row = copy.deepcopy(row)
        row.pop("_seq", None)
        if isinstance(self.scope, StaffScope):
            owner = self.db.profiles.get(row["user_id"])
            row["owner"] = (
                {key: owner[key] for key in ("id", "email", "full_name", "is_staff")} if owner else None
            )
        return row

    # Categories

    def list_categories(self, category_type=None):
        rows = [r for r in self.db.categories.values() if self._visible(r)]
        if category_type:
            rows = [r for r in rows if r["type"] == category_type]
        rows.sort(key=lambda r: (r["type"], r["name"]))
        return [self._annotate(r) for r in rows]

    def get_category(self, category_id):
        row = self.db.categories.get(category_id)
        return self._annotate(row) if row and self._visible(row) else None

    def get_own_category(self, category_id):
        row = self.db.categories.get(category_id)
        return copy.deepcopy(row) if row and row["user_id"] == self.user_id else None

    def insert_category(self, fields):
        row = {"id": new_id(), "user_id": self.user_id, **fields}
        self.db.categories[row["id"]] = row
        return copy.deepcopy(row)

    def update_category(self, category_id, fields):
        row = self.db.categories.get(category_id)
        if not row or row["user_id"] != self.user_id:
            return None
        row.update(fields)
        return copy.deepcopy(row)

    def count_category_references(self, category_id):
        return sum(1 for t in self.db.transactions.values() if t["category_id"] == category_id)

    def delete_category(self, category_id):
        row = self.db.categories.get(category_id)
        if not row or row["user_id"] != self.user_id:
            return False
        del self.db.categories[category_id]
        return True

    # Transactions

    def _embed(self, row: dict) -> dict:
        category = self.db.categories.get(row["category_id"]) if row["category_id"] else None
        row["category"] = (
            {key: category[key] for key in ("id", "name", "type", "color", "icon")} if category else None
        )
        return row

    def list_transactions(self, filters):
        rows = [r for r in self.db.transactions.values() if self._visible(r)]
        if filters.start_date:
            rows = [r for r in rows if r["date"] >= filters.start_date]
        if filters.end_date:
            rows = [r for r in rows if r["date"] <= filters.end_date]
        if filters.type:
            rows = [r for r in rows if r["type"] == filters.type]
        if filters.category_id:
            rows = [r for r in rows if r["category_id"] == filters.category_id]
        if filters.is_paid is not None:
            rows = [r for r in rows if r["is_paid"] == filters.is_paid]
        rows.sort(key=lambda r: (r["date"], r["_seq"]), reverse=True)
        rows = rows[filters.offset : filters.offset + filters.limit]
        return [self._annotate(self._embed(r)) for r in rows]

    def get_transaction(self, transaction_id):
        row = self.db.transactions.get(transaction_id)
        return self._annotate(self._embed(row)) if row and self._visible(row) else None

    def get_own_transaction(self, transaction_id, for_update=False):
        row = self.db.transactions.get(transaction_id)
        if not row or row["user_id"] != self.user_id:
            return None
        row = copy.deepcopy(self._embed(row))
        row.pop("_seq", None)
        return row

    def insert_transaction(self, fields):
        row = {
            "id": new_id(),
            "user_id": self.user_id,
            "category_id": fields.get("category_id"),
            "type": fields["type"],
            "amount": fields["amount"],
            "description": fields["description"],
            "date": fields["date"],
            "tags": list(fields.get("tags") or []),
            "notes": fields.get("notes"),
            "is_paid": bool(fields.get("is_paid")),
            "paid_at": fields.get("paid_at"),
            "_seq": next(_seq),
        }
        self.db.transactions[row["id"]] = row
        return self.get_own_transaction(row["id"])

    def update_transaction(self, transaction_id, fields):
        row = self.db.transactions.get(transaction_id)
        if not row or row["user_id"] != self.user_id:
            return None
        row.update(fields)
        return self.get_own_transaction(transaction_id)

    def delete_transaction(self, transaction_id):
        row = self.db.transactions.get(transaction_id)
        if not row or row["user_id"] != self.user_id:
            return False
        del self.db.transactions[transaction_id]
        return True

    def summary_rows(self, start_date=None, end_date=None):
        rows = [r for r in self.db.transactions.values() if r["user_id"] == self.user_id]
        if start_date:
            rows = [r for r in rows if r["date"] >= start_date]
        if end_date:
            rows = [r for r in rows if r["date"] <= end_date]
        return [{"type": r["type"], "amount": r["amount"], "is_paid": r["is_paid"]} for r in rows]


def seed_transaction(db: MemoryDB, user_id: str, **fields) -> dict:
    paid = bool(fields.get("is_paid"))
    row = {
        "id": new_id(),
        "user_id": user_id,
        "category_id": fields.get("category_id"),
        "type": fields.get("type", "expense"),
        "amount": Decimal(str(fields.get("amount", "10.00"))),
        "description": fields.get("description", "seed"),
        "date": fields.get("date", date(2026, 1, 15)),
        "tags": [],
        "notes": None,
        "is_paid": paid,
        "paid_at": datetime(2026, 1, 15, tzinfo=timezone.utc) if paid else None,
        "_seq": next(_seq),
    }
    db.transactions[row["id"]] = row
    return row


def seed_category(db: MemoryDB, user_id: str, name: str = "Food", category_type: str = "expense") -> dict:
    row = {"id": new_id(), "user_id": user_id, "name": name, "type": category_type, "color": "#EF4444", "icon": "🍽️"}
    db.categories[row["id"]] = row
    return row


class FakeElevatedStore:
    """Behaves like ``ElevatedStore`` over a ``MemoryDB``."""

    def __init__(self, db: MemoryDB) -> None:
        self.db = db

    def get_profile(self, user_id):
        profile = self.db.profiles.get(user_id)
        return copy.deepcopy(profile) if profile else None

    def list_profiles(self):
        return [copy.deepcopy(p) for p in self.db.profiles.values()]

    def upsert_profile(self, user_id, fields):
        profile = self.db.profiles.setdefault(
            user_id, {"id": user_id, "is_staff": False, "is_active": True, "is_verified": False}
        )
        profile.update(fields)
        return copy.deepcopy(profile)

    def update_profile(self, user_id, fields):
        profile = self.db.profiles.get(user_id)
        if not profile:
            return None
        profile.update(fields)
        return copy.deepcopy(profile)

    def set_staff(self, user_id, is_staff):
        profile = self.db.profiles.get(user_id)
        if not profile:
            return None
        profile["is_staff"] = is_staff
        return {"id": user_id, "is_staff": is_staff}

    def touch_last_login(self, user_id):
        if user_id in self.db.profiles:
            self.db.profiles[user_id]["last_login"] = datetime.now(timezone.utc)


class FakeIdentity:
    """Token table keyed by plain token; mirrors ``IdentityProvider``'s methods."""

    def __init__(self) -> None:
        self.identities: dict[str, dict] = {}
        self.passwords: dict[str, str] = {}
        self.sessions: dict[str, dict] = {}

    def issue(self, user_id: str, email: str) -> str:
        self.identities[user_id] = {"id": user_id, "email": email}
        token = f"token-{new_id()}"
        self.sessions[token] = {"session_id": new_id(), "user_id": user_id, "revoked": False}
        return token

    def authenticate(self, cur, token):
        session = self.sessions.get(token)
        if not session or session["revoked"]:
            raise Unauthenticated("Invalid or expired token")
        return {**self.identities[session["user_id"]], "session_id": session["session_id"]}

    def create_identity(self, cur, email, password):
        email = (email or "").strip().lower()
        if not email or not password:
            raise ValidationError("email and password required")
        user_id = new_id()
        self.identities[user_id] = {"id": user_id, "email": email}
        self.passwords[email] = password
        return self.identities[user_id]

    def sign_in(self, cur, email, password):
        email = (email or "").strip().lower()
        identity = next((i for i in self.identities.values() if i["email"] == email), None)
        if not identity or self.passwords.get(email) != password:
            raise Unauthenticated("Invalid login credentials")
        token = self.issue(identity["id"], email)
        return {"session_id": self.sessions[token]["session_id"], "access_token": token}, identity

    def refresh(self, cur, refresh_token):
        raise Unauthenticated("Invalid or expired refresh token")

    def revoke(self, cur, user_id, session_id=None):
        revoked = 0
        for session in self.sessions.values():
            if session["user_id"] != user_id or session["revoked"]:
                continue
            if session_id and session["session_id"] != session_id:
                continue
            session["revoked"] = True
            revoked += 1
        return revoked


class FakeConn:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    @contextmanager
    def cursor(self):
        yield object()

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def fake_connect_factory(conn: FakeConn):
    @contextmanager
    def connect():
        yield conn

    return connect


class CursorSpy:
    """Records SQL; returns canned rows."""

    def __init__(self, rows=None, one=None, raise_on_execute=None) -> None:
        self.calls: list[tuple[str, object]] = []
        self.rows = rows or []
        self.one = one
        self.raise_on_execute = raise_on_execute
        self.connection = FakeConn()
        self.rowcount = 0

    @property
    def last_sql(self) -> str:
        return self.calls[-1][0]

    @property
    def last_params(self):
        return self.calls[-1][1]

    def execute(self, sql, params=None):
        self.calls.append((sql, params))
        if self.raise_on_execute is not None:
            raise self.raise_on_execute

    def fetchone(self):
        return copy.deepcopy(self.one)

    def fetchall(self):
        return copy.deepcopy(self.rows)
