from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from estoque.database import get_db
from estoque.deps import get_admin_principal, get_current_principal
from estoque.schemas import Credentials, ProfileResponse, RegisterRequest, TokenResponse, UserResponse
from estoque.services import security
from estoque.services.security import Principal

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/auth/register", status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create a user account."""
    await security.register_user(db, body.usuario, body.senha, body.nivel)
    return {"ok": True}


@router.post("/auth/login", response_model=TokenResponse)
async def login(body: Credentials, db: AsyncSession = Depends(get_db)):
    """Exchange a username/password pair for a bearer token."""
    principal = await security.authenticate(db, body.usuario, body.senha)
    return TokenResponse(token=security.create_access_token(principal))


@router.get("/auth/perfil", response_model=ProfileResponse)
async def profile(principal: Principal = Depends(get_current_principal)):
    return ProfileResponse(usuario=principal.username, nivel=principal.role)


@router.get("/users", response_model=List[UserResponse], dependencies=[Depends(get_admin_principal)])
async def list_users(db: AsyncSession = Depends(get_db)):
    """List user accounts (admin only)."""
    users = await security.list_users(db)
    return [UserResponse(id=u.id, usuario=u.username, nivel=u.role) for u in users]
