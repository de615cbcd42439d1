from dataclasses import dataclass


@dataclass(frozen=True)
class OwnerScope:
    """Reads and writes limited to rows owned by ``user_id``."""

    user_id: str


@dataclass(frozen=True)
class StaffScope:
    """Reads span every user's rows; writes stay limited to ``user_id``."""

    user_id: str


Scope = OwnerScope | StaffScope


def scope_for(user_id: str, is_staff: bool) -> Scope:
    return StaffScope(user_id) if is_staff else OwnerScope(user_id)
