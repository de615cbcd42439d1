from typing import Iterator

from fastapi import Depends, Request

from pocketledger.db.pool import scoped_conn
from pocketledger.db.store import ScopedStore
from pocketledger.services.auth import bearer_token
from pocketledger.services.policy import AccessPolicy, Caller
from pocketledger.services.state import policy


def get_policy() -> AccessPolicy:
    return policy


def require_caller(req: Request, access: AccessPolicy = Depends(get_policy)) -> Caller:
    # Re-resolved on every request; the staff flag is never cached.
    return access.resolve_caller(bearer_token(req))


def get_store(caller: Caller = Depends(require_caller)) -> Iterator[ScopedStore]:
    with scoped_conn(caller.user_id) as conn, conn.cursor() as cur:
        yield ScopedStore(cur, caller.scope)
