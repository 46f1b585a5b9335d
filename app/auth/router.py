# erp_clinico/app/auth/router.py
import logging
import secrets

from fastapi import APIRouter, Depends, Header, Response, Request, HTTPException
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ContextoSesion, cargar_contexto, get_contexto
from app.core.config import settings
from app.core.passwords import verify_and_upgrade, verify_password, hash_password
from app.core.security import create_access_token, create_refresh_token, decode_token
from app.db.database import get_db
from app.db.models import UserRole, Usuario
from app.services.cuentas import crear_admin, registrar_acceso, registrar_last_login

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
COOKIE_REFRESH = "refresh_token"
COOKIE_CSRF = "csrf_token"


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class ChangePasswordIn(BaseModel):
    old_password: str
    new_password: str = Field(min_length=8)


class SetupAdminIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    cedula: str = Field(min_length=5, max_length=20)
    nombre_completo: str = Field(min_length=3, max_length=200)
    telefono: str | None = None


def _cookie_args(path: str, http_only: bool, max_age: int | None = None) -> dict:
    """Kwargs consistentes para set_cookie/delete_cookie."""
    d = {
        "httponly": http_only,
        "samesite": settings.COOKIE_SAMESITE,
        "secure": settings.COOKIE_SECURE,
        "path": path,
    }
    if max_age is not None:
        d["max_age"] = max_age
    if settings.COOKIE_DOMAIN:
        d["domain"] = settings.COOKIE_DOMAIN
    return d


def _client_info(request: Request) -> tuple[str | None, str | None]:
    ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")


def _emitir_tokens(res: Response, ctx: ContextoSesion) -> str:
    access = create_access_token(sub=ctx.user_id, role=ctx.role)
    refresh = create_refresh_token(sub=str(ctx.user_id), jti=secrets.token_hex(16))
    csrf = secrets.token_urlsafe(16)

    max_age = 60 * 60 * 24 * settings.REFRESH_DAYS
    res.set_cookie(COOKIE_REFRESH, refresh, **_cookie_args("/auth", True, max_age))
    res.set_cookie(COOKIE_CSRF, csrf, **_cookie_args("/", False, max_age))
    return access


def _user_payload(ctx: ContextoSesion) -> dict:
    return {
        "id": ctx.user_id,
        "email": ctx.email,
        "role": ctx.role,
        "profile_id": ctx.profile_id,
        "nombre": ctx.nombre,
    }


@router.post("/login")
async def login(body: LoginIn, request: Request, res: Response, db: AsyncSession = Depends(get_db)):
    user = (await db.execute(
        select(Usuario).where(func.lower(Usuario.email) == body.email.lower())
    )).scalar_one_or_none()
    if not user or not user.activo:
        logger.warning("Login rechazado para %s", body.email)
        raise HTTPException(401, "Credenciales invalidas")

    ok = await verify_and_upgrade(db, user, body.password)
    if not ok:
        logger.warning("Login rechazado para %s", body.email)
        raise HTTPException(401, "Credenciales invalidas")

    ctx = await cargar_contexto(db, user)

    ip, ua = _client_info(request)
    await registrar_last_login(db, ctx)
    await registrar_acceso(db, user.id, "login", ip, ua)
    await db.commit()

    access = _emitir_tokens(res, ctx)
    logger.info("Login ok user_id=%s role=%s", ctx.user_id, ctx.role)
    return {"access_token": access, "token_type": "bearer", "user": _user_payload(ctx)}


@router.post("/refresh")
async def refresh_token(
    request: Request,
    response: Response,
    x_csrf_token: str | None = Header(default=None, alias="X-CSRF-Token"),
    db: AsyncSession = Depends(get_db),
):
    rt = request.cookies.get(COOKIE_REFRESH)
    if not rt:
        raise HTTPException(401, "Falta refresh_token")

    csrf_cookie = request.cookies.get(COOKIE_CSRF)
    if not x_csrf_token or not csrf_cookie or not secrets.compare_digest(x_csrf_token, csrf_cookie):
        raise HTTPException(401, "CSRF inválido")

    try:
        payload = decode_token(rt)
    except Exception:
        raise HTTPException(401, "Refresh inválido")

    if payload.get("type") != "refresh" or not payload.get("sub"):
        raise HTTPException(401, "Token no es refresh")

    user = await db.get(Usuario, int(payload["sub"]))
    if not user or not user.activo:
        raise HTTPException(401, "Usuario no encontrado")

    # el rol se relee de la base: un refresh nunca arrastra un rol viejo
    ctx = await cargar_contexto(db, user)
    access = _emitir_tokens(response, ctx)
    return {"access_token": access, "token_type": "bearer", "user": _user_payload(ctx)}


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    ip, ua = _client_info(request)
    await registrar_acceso(db, ctx.user_id, "logout", ip, ua)
    await db.commit()

    response.delete_cookie(COOKIE_REFRESH, **_cookie_args("/auth", True))
    response.delete_cookie(COOKIE_CSRF, **_cookie_args("/", False))
    return {"ok": True}


@router.post("/change-password")
async def change_password(
    body: ChangePasswordIn,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    user = await db.get(Usuario, ctx.user_id)
    if not user:
        raise HTTPException(404, "Usuario no encontrado")
    if not verify_password(body.old_password, user.hashed_password):
        raise HTTPException(400, "La contrasena actual es incorrecta")

    user.hashed_password = hash_password(body.new_password)
    await db.commit()
    return {"ok": True}


@router.get("/me")
async def get_me(ctx: ContextoSesion = Depends(get_contexto)):
    return {"user": _user_payload(ctx)}


@router.post("/setup-admin", status_code=201)
async def setup_admin(body: SetupAdminIn, db: AsyncSession = Depends(get_db)):
    """Crea el primer administrador. Sólo funciona mientras no exista ninguno."""
    existe = (await db.execute(
        select(func.count()).select_from(UserRole).where(UserRole.role == "admin")
    )).scalar_one()
    if existe:
        raise HTTPException(409, "Ya existe un administrador")

    user = await crear_admin(
        db,
        email=body.email,
        password=body.password,
        cedula=body.cedula,
        nombre_completo=body.nombre_completo,
        telefono=body.telefono,
    )
    await db.commit()
    logger.info("Administrador inicial creado user_id=%s", user.id)
    return {"id": user.id, "email": user.email, "role": "admin"}
