from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth import Claims, TokenService
from app.config import Settings
from app.errors import Forbidden, Unauthenticated

bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_current_claims(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        tokens: TokenService = Depends(get_token_service),
) -> Claims:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Unauthorized")
    return tokens.verify(credentials.credentials)


def require_admin(claims: Claims = Depends(get_current_claims)) -> Claims:
    if not claims.is_admin:
        raise Forbidden("Administrator users only.")
    return claims
