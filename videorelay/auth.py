import hashlib
import secrets
from typing import Optional

from fastapi import Depends, Header, Request

from videorelay.context import AppContext
from videorelay.errors import AuthError, ConfigError


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def password_hash_guard(
    x_password_hash: Optional[str] = Header(default=None),
    ctx: AppContext = Depends(get_context),
):
    password = ctx.settings.APP_PASSWORD
    if not password:
        return
    if not x_password_hash:
        raise AuthError("Unauthorized: Missing password hash.")
    if not secrets.compare_digest(x_password_hash.encode("utf-8"), sha256_hex(password).encode("utf-8")):
        raise AuthError("Unauthorized: Invalid password.")


def api_key_guard(ctx: AppContext = Depends(get_context)):
    if not ctx.settings.OPENAI_API_KEY or ctx.remote is None:
        raise ConfigError("Server configuration error: API key not found.")
