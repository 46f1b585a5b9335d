# app/services/cuentas.py
import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ErrorConsistencia, NoEncontrado
from app.core.passwords import hash_password
from app.db.models import AccessLog, AdminProfile, TherapistProfile, UserRole, Usuario

logger = logging.getLogger(__name__)


async def _email_libre(db: AsyncSession, email: str) -> None:
    existe = (await db.execute(
        select(Usuario.id).where(func.lower(Usuario.email) == email.lower())
    )).scalar_one_or_none()
    if existe:
        raise ErrorConsistencia("Ya existe un usuario con ese email")


async def _crear_usuario(db: AsyncSession, email: str, password: str, role: str) -> Usuario:
    await _email_libre(db, email)
    user = Usuario(email=email.lower(), hashed_password=hash_password(password), activo=True)
    db.add(user)
    await db.flush()
    db.add(UserRole(user_id=user.id, role=role))
    return user


async def crear_admin(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    cedula: str,
    nombre_completo: str,
    telefono: str | None = None,
) -> Usuario:
    """Usuario + rol admin + perfil. Sin commit."""
    user = await _crear_usuario(db, email, password, "admin")
    db.add(AdminProfile(
        user_id=user.id,
        cedula=cedula,
        nombre_completo=nombre_completo,
        email=email.lower(),
        telefono=telefono,
    ))
    await db.flush()
    return user


async def crear_terapeuta(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    cedula: str,
    nombre_completo: str,
    especialidad: str,
    telefono: str | None = None,
    firma_digital_url: str | None = None,
) -> TherapistProfile:
    """
    Alta de terapeuta: usuario, rol 'terapeuta' y perfil en la misma transacción.
    No hace commit; si algo falla el caller hace rollback y no queda nada a medias.
    """
    dup = (await db.execute(
        select(TherapistProfile.id).where(TherapistProfile.cedula == cedula)
    )).scalar_one_or_none()
    if dup:
        raise ErrorConsistencia("Ya existe un terapeuta con esa cédula")

    user = await _crear_usuario(db, email, password, "terapeuta")
    perfil = TherapistProfile(
        user_id=user.id,
        cedula=cedula,
        nombre_completo=nombre_completo,
        email=email.lower(),
        telefono=telefono,
        especialidad=especialidad,
        firma_digital_url=firma_digital_url,
        activo=True,
    )
    db.add(perfil)
    await db.flush()
    logger.info("Terapeuta creado id=%s especialidad=%s", perfil.id, especialidad)
    return perfil


async def set_terapeuta_activo(db: AsyncSession, therapist_id: int, activo: bool) -> TherapistProfile:
    perfil = await db.get(TherapistProfile, therapist_id)
    if not perfil:
        raise NoEncontrado("Terapeuta no encontrado")
    perfil.activo = activo
    await db.flush()
    logger.info("Terapeuta id=%s activo=%s", therapist_id, activo)
    return perfil


async def registrar_acceso(
    db: AsyncSession,
    user_id: int,
    action: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AccessLog:
    log = AccessLog(
        user_id=user_id,
        action=action,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500] or None,
    )
    db.add(log)
    await db.flush()
    return log


async def registrar_last_login(db: AsyncSession, ctx) -> None:
    if not ctx.profile_id:
        return
    model = AdminProfile if ctx.es_admin else TherapistProfile
    perfil = await db.get(model, ctx.profile_id)
    if perfil:
        perfil.last_login = datetime.now(timezone.utc)
        await db.flush()
