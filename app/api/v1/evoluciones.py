import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import validar_acceso_orden
from app.auth.deps import ContextoSesion, get_contexto, require_admin
from app.db.database import get_db
from app.db.models import Evolucion, TherapistProfile
from app.schemas.evoluciones_schema import EvolucionCreate, EvolucionRead, EvolucionUpdate
from app.services.evoluciones import (
    crear_evolucion, editar_evolucion, estado_bloqueo, get_evolucion, listar_evoluciones, lock_evolution,
    sync_expired_locks,
)
from app.services.mail_templates import build_evolucion_document
from app.services.sesiones import get_sesion

logger = logging.getLogger(__name__)

router = APIRouter()


def _out(evo: Evolucion) -> EvolucionRead:
    bloqueo = estado_bloqueo(evo)
    out = EvolucionRead.model_validate(evo)
    out.editable = bloqueo.editable
    out.horas_restantes = bloqueo.horas_restantes
    return out


@router.post("", response_model=EvolucionRead, status_code=201)
async def registrar_evolucion(
    payload: EvolucionCreate,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    """Si la sesión tenía un completado pendiente, queda completada en la misma transacción."""
    evo = await crear_evolucion(db, ctx, payload.session_id, payload.model_dump(exclude={"session_id"}))
    await db.commit()
    return _out(evo)


@router.get("", response_model=List[EvolucionRead])
async def listar(
    patient_id: Optional[int] = Query(None),
    order_id: Optional[int] = Query(None),
    therapist_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    if not ctx.es_admin:
        therapist_id = ctx.therapist_id
    evos = await listar_evoluciones(db, therapist_id, patient_id, order_id, limit, skip)
    return [_out(e) for e in evos]


@router.post("/bloqueos/sincronizar")
async def sincronizar_bloqueos(
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    n = await sync_expired_locks(db)
    await db.commit()
    return {"bloqueadas": n}


@router.get("/{evolucion_id}", response_model=EvolucionRead)
async def obtener(
    evolucion_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    evo = await get_evolucion(db, evolucion_id)
    sesion = await get_sesion(db, evo.session_id)
    validar_acceso_orden(ctx, sesion.orden)
    return _out(evo)


@router.patch("/{evolucion_id}", response_model=EvolucionRead)
async def editar(
    evolucion_id: int,
    payload: EvolucionUpdate,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    evo = await editar_evolucion(db, ctx, evolucion_id, payload.model_dump(exclude_unset=True))
    await db.commit()
    return _out(evo)


@router.post("/{evolucion_id}/bloquear", response_model=EvolucionRead)
async def bloquear(
    evolucion_id: int,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    evo = await lock_evolution(db, ctx, evolucion_id)
    await db.commit()
    return _out(evo)


@router.get("/{evolucion_id}/documento", response_class=HTMLResponse)
async def documento(
    evolucion_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    """Documento clínico imprimible (HTML). Disponible aunque la evolución esté bloqueada."""
    evo = await get_evolucion(db, evolucion_id)
    sesion = await get_sesion(db, evo.session_id)
    orden = sesion.orden
    validar_acceso_orden(ctx, orden)
    terapeuta = await db.get(TherapistProfile, evo.therapist_id)
    html = build_evolucion_document(
        paciente=orden.paciente, orden=orden, sesion=sesion, evolucion=evo, terapeuta=terapeuta,
    )
    return HTMLResponse(content=html)
