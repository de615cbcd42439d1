from fastapi import Request

from pocketledger.core.config import settings
from pocketledger.core.errors import TooManyRequests
from pocketledger.services.state import rate_limiter


def get_client_ip(req: Request) -> str:
    forwarded = req.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = req.headers.get("x-real-ip", "")
    if real_ip:
        return real_ip.strip()
    if req.client:
        return req.client.host
    return "unknown"


def bearer_token(req: Request) -> str | None:
    header = req.headers.get("authorization", "")
    parts = header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()


def enforce_register_rate_limit(req: Request) -> None:
    client_ip = get_client_ip(req)
    if rate_limiter.exceeded(
        f"register:ip:{client_ip}",
        settings.register_rate_limit,
        settings.register_rate_window,
    ):
        raise TooManyRequests("Too many registration attempts. Try again later.")


def enforce_login_rate_limit(req: Request, email: str) -> None:
    client_ip = get_client_ip(req)
    if rate_limiter.exceeded(f"login:ip:{client_ip}", settings.login_rate_limit, settings.login_rate_window):
        raise TooManyRequests("Too many login attempts. Try again later.")
    if rate_limiter.exceeded(
        f"login:user:{email.strip().lower()}",
        settings.login_user_rate_limit,
        settings.login_rate_window,
    ):
        raise TooManyRequests("Too many login attempts. Try again later.")
