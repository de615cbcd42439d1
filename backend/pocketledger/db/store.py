from dataclasses import dataclass
from datetime import date
from typing import Any

from psycopg.errors import ForeignKeyViolation
from psycopg.types.json import Jsonb

from pocketledger.core.errors import Conflict
from pocketledger.services.scopes import Scope, StaffScope

CATEGORY_COLUMNS = """
    c.id::text AS id,
    c.user_id::text AS user_id,
    c.name,
    c.type,
    c.color,
    c.icon,
    c.created_at,
    c.updated_at
"""

TRANSACTION_COLUMNS = """
    t.id::text AS id,
    t.user_id::text AS user_id,
    t.category_id::text AS category_id,
    t.type,
    t.amount,
    t.description,
    t.date,
    t.tags,
    t.notes,
    t.is_paid,
    t.paid_at,
    t.created_at,
    t.updated_at,
    CASE WHEN c.id IS NULL THEN NULL
         ELSE jsonb_build_object('id', c.id, 'name', c.name, 'type', c.type, 'color', c.color, 'icon', c.icon)
    END AS category
"""

PROFILE_COLUMNS = """
    u.id::text AS id,
    u.email,
    u.full_name,
    u.username,
    u.avatar_url,
    u.bio,
    u.phone,
    u.date_of_birth,
    u.location,
    u.website,
    u.is_verified,
    u.is_active,
    u.is_staff,
    u.last_login,
    u.preferences,
    u.created_at,
    u.updated_at
"""

OWNER_PREFIX = "owner__"

CATEGORY_WRITABLE = frozenset({"name", "type", "color", "icon"})
TRANSACTION_WRITABLE = frozenset(
    {"category_id", "type", "amount", "description", "date", "tags", "notes", "is_paid", "paid_at"}
)
PROFILE_WRITABLE = frozenset(
    {
        "email",
        "full_name",
        "username",
        "avatar_url",
        "bio",
        "phone",
        "date_of_birth",
        "location",
        "website",
        "preferences",
        "is_active",
        "is_verified",
    }
)

_PLACEHOLDERS = {"tags": "%s::text[]", "preferences": "%s::jsonb", "category_id": "%s::uuid"}


@dataclass(frozen=True)
class TransactionFilters:
    start_date: date | None = None
    end_date: date | None = None
    type: str | None = None
    category_id: str | None = None
    is_paid: bool | None = None
    limit: int = 50
    offset: int = 0


def visibility(scope: Scope, alias: str) -> tuple[str, str, str, list[Any]]:
    """Columns, join, predicate and params that apply ``scope`` to a read.

    Staff reads are unfiltered and pick up the owning profile through one
    join; owner reads are filtered to the caller's rows.
    """
    if isinstance(scope, StaffScope):
        columns = (
            f", o.id::text AS {OWNER_PREFIX}id"
            f", o.email AS {OWNER_PREFIX}email"
            f", o.full_name AS {OWNER_PREFIX}full_name"
            f", o.is_staff AS {OWNER_PREFIX}is_staff"
        )
        return columns, f" LEFT JOIN users o ON o.id={alias}.user_id", "TRUE", []
    return "", "", f"{alias}.user_id=%s", [scope.user_id]


def attach_owner(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    owner = {key[len(OWNER_PREFIX):]: row.pop(key) for key in list(row) if key.startswith(OWNER_PREFIX)}
    if owner:
        row["owner"] = owner if owner.get("id") else None
    return row


def _param(column: str, value: Any) -> Any:
    if column == "preferences":
        return Jsonb(value or {})
    if column == "tags":
        return list(value or [])
    return value


def _assignments(fields: dict[str, Any], allowed: frozenset[str]) -> tuple[str, list[Any]]:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Columns not writable: {', '.join(sorted(unknown))}")
    columns = sorted(fields)
    clause = ", ".join(f"{col}={_PLACEHOLDERS.get(col, '%s')}" for col in columns)
    return clause, [_param(col, fields[col]) for col in columns]


class ScopedStore:
    """Category and transaction access bound to one caller's scope.

    Reads honour the scope; every write is filtered to the caller's own rows
    whatever the scope.
    """

    def __init__(self, cur, scope: Scope) -> None:
        self.cur = cur
        self.scope = scope

    @property
    def user_id(self) -> str:
        return self.scope.user_id

    def commit(self) -> None:
        self.cur.connection.commit()

    # Categories

    def list_categories(self, category_type: str | None = None) -> list[dict[str, Any]]:
        columns, join, predicate, params = visibility(self.scope, "c")
        sql = f"SELECT {CATEGORY_COLUMNS}{columns} FROM categories c{join} WHERE {predicate}"
        if category_type:
            sql += " AND c.type=%s"
            params.append(category_type)
        sql += " ORDER BY c.type ASC, c.name ASC"
        self.cur.execute(sql, params)
        return [attach_owner(row) for row in self.cur.fetchall()]

    def get_category(self, category_id: str) -> dict[str, Any] | None:
        columns, join, predicate, params = visibility(self.scope, "c")
        self.cur.execute(
            f"SELECT {CATEGORY_COLUMNS}{columns} FROM categories c{join} WHERE c.id=%s::uuid AND {predicate}",
            [category_id, *params],
        )
        return attach_owner(self.cur.fetchone())

    def get_own_category(self, category_id: str) -> dict[str, Any] | None:
        self.cur.execute(
            f"SELECT {CATEGORY_COLUMNS} FROM categories c WHERE c.id=%s::uuid AND c.user_id=%s",
            (category_id, self.user_id),
        )
        return self.cur.fetchone()

    def insert_category(self, fields: dict[str, Any]) -> dict[str, Any]:
        self.cur.execute(
            f"""
            INSERT INTO categories AS c (user_id, name, type, color, icon)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {CATEGORY_COLUMNS}
            """,
            (self.user_id, fields["name"], fields["type"], fields["color"], fields["icon"]),
        )
        return self.cur.fetchone()

    def update_category(self, category_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
        clause, params = _assignments(fields, CATEGORY_WRITABLE)
        self.cur.execute(
            f"""
            UPDATE categories AS c SET {clause}
            WHERE c.id=%s::uuid AND c.user_id=%s
            RETURNING {CATEGORY_COLUMNS}
            """,
            [*params, category_id, self.user_id],
        )
        return self.cur.fetchone()

    def count_category_references(self, category_id: str) -> int:
        self.cur.execute(
            "SELECT COUNT(*) AS refs FROM transactions t WHERE t.category_id=%s::uuid",
            (category_id,),
        )
        row = self.cur.fetchone() or {}
        return int(row.get("refs") or 0)

    def delete_category(self, category_id: str) -> bool:
        try:
            self.cur.execute(
                "DELETE FROM categories c WHERE c.id=%s::uuid AND c.user_id=%s RETURNING c.id::text AS id",
                (category_id, self.user_id),
            )
        except ForeignKeyViolation:
            raise Conflict("Category is still referenced by transactions")
        return self.cur.fetchone() is not None

    # Transactions

    def list_transactions(self, filters: TransactionFilters) -> list[dict[str, Any]]:
        columns, join, predicate, params = visibility(self.scope, "t")
        sql = f"""
            SELECT {TRANSACTION_COLUMNS}{columns}
            FROM transactions t
            LEFT JOIN categories c ON c.id=t.category_id{join}
            WHERE {predicate}
        """
        if filters.start_date:
            sql += " AND t.date >= %s"
            params.append(filters.start_date)
        if filters.end_date:
            sql += " AND t.date <= %s"
            params.append(filters.end_date)
        if filters.type:
            sql += " AND t.type=%s"
            params.append(filters.type)
        if filters.category_id:
            sql += " AND t.category_id=%s::uuid"
            params.append(filters.category_id)
        if filters.is_paid is not None:
            sql += " AND t.is_paid=%s"
            params.append(filters.is_paid)
        sql += " ORDER BY t.date DESC, t.created_at DESC LIMIT %s OFFSET %s"
        params.extend([filters.limit, filters.offset])
        self.cur.execute(sql, params)
        return [attach_owner(row) for row in self.cur.fetchall()]

    def get_transaction(self, transaction_id: str) -> dict[str, Any] | None:
        columns, join, predicate, params = visibility(self.scope, "t")
        self.cur.execute(
            f"""
            SELECT {TRANSACTION_COLUMNS}{columns}
            FROM transactions t
            LEFT JOIN categories c ON c.id=t.category_id{join}
            WHERE t.id=%s::uuid AND {predicate}
            """,
            [transaction_id, *params],
        )
        return attach_owner(self.cur.fetchone())

    def get_own_transaction(self, transaction_id: str, for_update: bool = False) -> dict[str, Any] | None:
        sql = f"""
            SELECT {TRANSACTION_COLUMNS}
            FROM transactions t
            LEFT JOIN categories c ON c.id=t.category_id
            WHERE t.id=%s::uuid AND t.user_id=%s
        """
        if for_update:
            sql += " FOR UPDATE OF t"
        self.cur.execute(sql, (transaction_id, self.user_id))
        return self.cur.fetchone()

    def insert_transaction(self, fields: dict[str, Any]) -> dict[str, Any]:
        self.cur.execute(
            """
            INSERT INTO transactions (
                user_id, category_id, type, amount, description, date, tags, notes, is_paid, paid_at
            )
            VALUES (%s, %s::uuid, %s, %s, %s, %s, %s::text[], %s, %s, %s)
            RETURNING id::text AS id
            """,
            (
                self.user_id,
                fields.get("category_id"),
                fields["type"],
                fields["amount"],
                fields["description"],
                fields["date"],
                list(fields.get("tags") or []),
                fields.get("notes"),
                bool(fields.get("is_paid")),
                fields.get("paid_at"),
            ),
        )
        transaction_id = self.cur.fetchone()["id"]
        return self.get_own_transaction(transaction_id)

    def update_transaction(self, transaction_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
        clause, params = _assignments(fields, TRANSACTION_WRITABLE)
        self.cur.execute(
            f"UPDATE transactions SET {clause} WHERE id=%s::uuid AND user_id=%s RETURNING id::text AS id",
            [*params, transaction_id, self.user_id],
        )
        if self.cur.fetchone() is None:
            return None
        return self.get_own_transaction(transaction_id)

    def delete_transaction(self, transaction_id: str) -> bool:
        self.cur.execute(
            "DELETE FROM transactions WHERE id=%s::uuid AND user_id=%s RETURNING id::text AS id",
            (transaction_id, self.user_id),
        )
        return self.cur.fetchone() is not None

    def summary_rows(self, start_date: date | None = None, end_date: date | None = None) -> list[dict[str, Any]]:
        # Always the caller's own rows, whatever the scope.
        sql = "SELECT t.type, t.amount, t.is_paid FROM transactions t WHERE t.user_id=%s"
        params: list[Any] = [self.user_id]
        if start_date:
            sql += " AND t.date >= %s"
            params.append(start_date)
        if end_date:
            sql += " AND t.date <= %s"
            params.append(end_date)
        self.cur.execute(sql, params)
        return self.cur.fetchall()


class ElevatedStore:
    """Service-role profile access. Constructed only by the access policy."""

    def __init__(self, cur) -> None:
        self.cur = cur

    def get_profile(self, user_id: str) -> dict[str, Any] | None:
        self.cur.execute(f"SELECT {PROFILE_COLUMNS} FROM users u WHERE u.id=%s::uuid", (user_id,))
        return self.cur.fetchone()

    def list_profiles(self) -> list[dict[str, Any]]:
        self.cur.execute(f"SELECT {PROFILE_COLUMNS} FROM users u ORDER BY u.created_at DESC")
        return self.cur.fetchall()

    def upsert_profile(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        _, params = _assignments(fields, PROFILE_WRITABLE)
        columns = sorted(fields)
        placeholders = ", ".join(_PLACEHOLDERS.get(col, "%s") for col in columns)
        updates = ", ".join(f"{col}=EXCLUDED.{col}" for col in columns)
        self.cur.execute(
            f"""
            INSERT INTO users AS u (id, {", ".join(columns)})
            VALUES (%s::uuid, {placeholders})
            ON CONFLICT (id) DO UPDATE SET {updates}
            RETURNING {PROFILE_COLUMNS}
            """,
            [user_id, *params],
        )
        return self.cur.fetchone()

    def update_profile(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
        clause, params = _assignments(fields, PROFILE_WRITABLE)
        self.cur.execute(
            f"UPDATE users AS u SET {clause} WHERE u.id=%s::uuid RETURNING {PROFILE_COLUMNS}",
            [*params, user_id],
        )
        return self.cur.fetchone()

    def set_staff(self, user_id: str, is_staff: bool) -> dict[str, Any] | None:
        self.cur.execute(
            "UPDATE users SET is_staff=%s WHERE id=%s::uuid RETURNING id::text AS id, is_staff",
            (is_staff, user_id),
        )
        return self.cur.fetchone()

    def touch_last_login(self, user_id: str) -> None:
        self.cur.execute("UPDATE users SET last_login=NOW() WHERE id=%s::uuid", (user_id,))
