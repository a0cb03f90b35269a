from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from warehouse_portal.auth import Principal
from warehouse_portal.config import settings

AUTH_EXEMPT_PATHS = {'/health', '/docs', '/openapi.json'}


def bearer_token(request: Request) -> str | None:
    header = request.headers.get('authorization') or ''
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def load_principal_from_token(token: str | None) -> Principal | None:
    if not token:
        return None
    user_id = settings.api_tokens.get(token)
    if not user_id:
        return None
    return Principal(user_id=user_id)


def install_auth_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_middleware(request: Request, call_next):
        request.state.principal = load_principal_from_token(bearer_token(request))
        if request.url.path not in AUTH_EXEMPT_PATHS and request.state.principal is None:
            return JSONResponse({'detail': 'Not authenticated'}, status_code=401)
        return await call_next(request)
