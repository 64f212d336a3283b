from __future__ import annotations

from fastapi import Request

from pathtracker.services.auth.api_keys import ApiKeyIdentity
from pathtracker.services.auth.sessions import SessionIdentity


async def require_api_key(request: Request) -> ApiKeyIdentity:
    return await request.app.state.api_key_authenticator.validate(request.headers.get("Authorization"))


async def require_session(request: Request) -> SessionIdentity:
    header = request.app.state.session_user_header
    return await request.app.state.session_resolver.resolve(request.headers.get(header))
