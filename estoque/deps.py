"""FastAPI dependencies for the application-owned state and the caller's identity."""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from estoque.errors import AuthError
from estoque.services.code_allocator import CodeAllocator
from estoque.services.import_progress import ImportProgress
from estoque.services.security import Principal, decode_access_token, require_admin
from estoque.services.undo_buffer import RecentlyDeleted

# auto_error=False so a missing header is reported as our AuthError
security = HTTPBearer(auto_error=False)


def get_allocator(request: Request) -> CodeAllocator:
    return request.app.state.code_allocator


def get_progress(request: Request) -> ImportProgress:
    return request.app.state.import_progress


def get_recently_deleted(request: Request) -> RecentlyDeleted:
    return request.app.state.recently_deleted


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    if credentials is None:
        raise AuthError("Missing bearer token")
    return decode_access_token(credentials.credentials)


def get_admin_principal(principal: Principal = Depends(get_current_principal)) -> Principal:
    return require_admin(principal)
