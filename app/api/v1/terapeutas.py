import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ContextoSesion, get_contexto, require_admin
from app.core.config import settings
from app.core.errors import ErrorAutorizacion, NoEncontrado
from app.db.database import get_db
from app.db.models import TherapistProfile
from app.schemas.terapeutas_schema import (
    ActivoIn, Especialidad, TarifaCreate, TarifaRead, TarifaUpdate, TerapeutaCreate, TerapeutaRead, TerapeutaUpdate,
)
from app.services.cuentas import crear_terapeuta, set_terapeuta_activo
from app.services.email import send_email_resend
from app.services.mail_templates import build_welcome_therapist_email
from app.services.nomina import actualizar_tarifa, crear_tarifa, listar_tarifas

logger = logging.getLogger(__name__)

router = APIRouter()


def _enviar_bienvenida(perfil_email: str, nombre: str, especialidad: str) -> None:
    login_url = f"{settings.FRONT_BASE_URL.rstrip('/')}/auth" if settings.FRONT_BASE_URL else None
    html, text = build_welcome_therapist_email(
        name=nombre, email=perfil_email, especialidad=especialidad, login_url=login_url,
    )
    send_email_resend(perfil_email, "Tu cuenta en ERP Clínico", html, text)


@router.get("", response_model=List[TerapeutaRead])
async def listar_terapeutas(
    especialidad: Optional[Especialidad] = Query(None),
    activo: Optional[bool] = Query(None),
    q: Optional[str] = Query(None),
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(TherapistProfile).order_by(TherapistProfile.nombre_completo)
    if especialidad is not None:
        stmt = stmt.where(TherapistProfile.especialidad == especialidad.value)
    if activo is not None:
        stmt = stmt.where(TherapistProfile.activo.is_(activo))
    if q:
        stmt = stmt.where(TherapistProfile.nombre_completo.ilike(f"%{q.strip()}%"))
    return (await db.execute(stmt)).scalars().all()


@router.post("", response_model=TerapeutaRead, status_code=201)
async def crear_cuenta_terapeuta(
    payload: TerapeutaCreate,
    background: BackgroundTasks,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    perfil = await crear_terapeuta(
        db,
        email=payload.email,
        password=payload.password,
        cedula=payload.cedula,
        nombre_completo=payload.nombre_completo,
        especialidad=payload.especialidad.value,
        telefono=payload.telefono,
        firma_digital_url=payload.firma_digital_url,
    )
    await db.commit()
    await db.refresh(perfil)
    # best effort: un fallo de correo no afecta el alta
    background.add_task(_enviar_bienvenida, perfil.email, perfil.nombre_completo, perfil.especialidad)
    return perfil


@router.get("/{therapist_id}", response_model=TerapeutaRead)
async def obtener_terapeuta(
    therapist_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    perfil = await db.get(TherapistProfile, therapist_id)
    if not perfil:
        raise NoEncontrado("Terapeuta no encontrado")
    return perfil


@router.patch("/{therapist_id}", response_model=TerapeutaRead)
async def editar_terapeuta(
    therapist_id: int,
    payload: TerapeutaUpdate,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    # el propio terapeuta puede actualizar su perfil (p.ej. la firma)
    if not ctx.es_admin and ctx.therapist_id != therapist_id:
        raise ErrorAutorizacion()
    perfil = await db.get(TherapistProfile, therapist_id)
    if not perfil:
        raise NoEncontrado("Terapeuta no encontrado")
    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(perfil, k, v)
    await db.commit()
    await db.refresh(perfil)
    return perfil


@router.patch("/{therapist_id}/activo", response_model=TerapeutaRead)
async def cambiar_activo(
    therapist_id: int,
    payload: ActivoIn,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    perfil = await set_terapeuta_activo(db, therapist_id, payload.activo)
    await db.commit()
    await db.refresh(perfil)
    return perfil


# ---------- Tarifas ----------
@router.get("/{therapist_id}/tarifas", response_model=List[TarifaRead])
async def tarifas_del_terapeuta(
    therapist_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    if not ctx.es_admin and ctx.therapist_id != therapist_id:
        raise ErrorAutorizacion()
    return await listar_tarifas(db, therapist_id)


@router.post("/{therapist_id}/tarifas", response_model=TarifaRead, status_code=201)
async def crear_tarifa_terapeuta(
    therapist_id: int,
    payload: TarifaCreate,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    datos = payload.model_dump()
    if payload.especialidad is not None:
        datos["especialidad"] = payload.especialidad.value
    tarifa = await crear_tarifa(db, therapist_id, datos)
    await db.commit()
    return tarifa


@router.put("/tarifas/{tarifa_id}", response_model=TarifaRead)
async def editar_tarifa(
    tarifa_id: int,
    payload: TarifaUpdate,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    cambios = payload.model_dump(exclude_unset=True, exclude={"version"})
    tarifa = await actualizar_tarifa(db, tarifa_id, payload.version, cambios)
    await db.commit()
    return tarifa
