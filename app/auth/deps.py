# erp_clinico/app/auth/deps.py
from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, ExpiredSignatureError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ErrorAutorizacion
from app.core.security import decode_token
from app.db.database import get_db
from app.db.models import AdminProfile, TherapistProfile, UserRole, Usuario


@dataclass(frozen=True)
class ContextoSesion:
    """Identidad del usuario autenticado, armada por request desde el token."""
    user_id: int
    email: str
    role: str
    profile_id: int | None = None      # admin_profiles.id o therapist_profiles.id según rol
    nombre: str | None = None

    @property
    def es_admin(self) -> bool:
        return self.role == "admin"

    @property
    def therapist_id(self) -> int | None:
        return self.profile_id if self.role == "terapeuta" else None


bearer = HTTPBearer(auto_error=False)


async def get_user_role(db: AsyncSession, user_id: int) -> str | None:
    """
    Devuelve el rol del usuario. Si tuviera más de uno, prioriza admin.
    """
    roles = (await db.execute(
        select(UserRole.role).where(UserRole.user_id == user_id)
    )).scalars().all()
    if "admin" in roles:
        return "admin"
    return roles[0] if roles else None


async def cargar_contexto(db: AsyncSession, user: Usuario, role: str | None = None) -> ContextoSesion:
    role = role or await get_user_role(db, user.id)
    if not role:
        raise HTTPException(status_code=409, detail="El usuario no tiene rol asignado")

    model = AdminProfile if role == "admin" else TherapistProfile
    profile = (await db.execute(
        select(model).where(model.user_id == user.id)
    )).scalar_one_or_none()

    if role == "terapeuta" and profile is not None and not profile.activo:
        raise HTTPException(status_code=403, detail="Terapeuta inactivo")

    return ContextoSesion(
        user_id=user.id,
        email=user.email,
        role=role,
        profile_id=profile.id if profile else None,
        nombre=profile.nombre_completo if profile else None,
    )


async def get_contexto(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> ContextoSesion:
    if not creds:
        raise HTTPException(status_code=401, detail="Falta token Bearer")

    try:
        payload = decode_token(creds.credentials)
    except ExpiredSignatureError:
        # el frontend usa este detalle para disparar /auth/refresh
        raise HTTPException(status_code=401, detail="token_expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Token inválido")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Token inválido (tipo)")

    sub = payload.get("sub")
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Token inválido (sub)")

    user = await db.get(Usuario, user_id)
    if not user or not user.activo:
        raise HTTPException(status_code=401, detail="Usuario no encontrado")

    return await cargar_contexto(db, user, payload.get("role"))


def require_role(*roles: str):
    def checker(ctx: ContextoSesion = Depends(get_contexto)) -> ContextoSesion:
        if ctx.role not in roles:
            raise ErrorAutorizacion()
        return ctx
    return checker


require_admin = require_role("admin")
