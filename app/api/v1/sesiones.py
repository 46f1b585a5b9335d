import logging
from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import validar_acceso_orden
from app.auth.deps import ContextoSesion, get_contexto, require_admin
from app.core.errors import ErrorValidacion
from app.db.database import get_db
from app.db.models import Sesion
from app.schemas.sesiones_schema import (
    CompletadoIn, CompletadoPendienteRead, EstadoSesion, ReprogramacionOut, ReprogramarIn, ResumeIn,
    SesionAgenda, SesionRead, TransicionIn,
)
from app.services.agenda import agenda_terapeuta
from app.services.reprogramacion import list_pending_reschedules, reconcile_reschedules, reschedule_session
from app.services.sesiones import (
    abandon_completion, get_sesion, resume_completion, start_completion, transition_session,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _agenda_item(s: Sesion) -> SesionAgenda:
    orden = s.orden
    return SesionAgenda(
        **SesionRead.model_validate(s).model_dump(),
        patient_id=orden.patient_id,
        paciente=orden.paciente.nombre_completo,
        therapist_id=orden.therapist_id,
        terapeuta=orden.terapeuta.nombre_completo,
        especialidad=orden.especialidad,
        total_sesiones=orden.total_sesiones,
    )


@router.get("/agenda", response_model=List[SesionAgenda])
async def ver_agenda(
    desde: Optional[date] = Query(None),
    hasta: Optional[date] = Query(None),
    therapist_id: Optional[int] = Query(None),
    estado: Optional[EstadoSesion] = Query(None),
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    """Agenda por rango de fechas (por defecto, la semana que empieza hoy)."""
    desde = desde or date.today()
    hasta = hasta or desde + timedelta(days=6)
    if hasta < desde:
        raise ErrorValidacion("'hasta' debe ser posterior a 'desde'")
    if not ctx.es_admin:
        therapist_id = ctx.therapist_id
    sesiones = await agenda_terapeuta(db, therapist_id, desde, hasta, estado.value if estado else None)
    return [_agenda_item(s) for s in sesiones]


@router.get("/pendientes-reprogramar", response_model=List[SesionAgenda])
async def pendientes_de_reprogramar(
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    therapist_id = None if ctx.es_admin else ctx.therapist_id
    return [_agenda_item(s) for s in await list_pending_reschedules(db, therapist_id)]


@router.post("/reconciliar-reprogramaciones")
async def reconciliar_reprogramaciones(
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    corregidas = await reconcile_reschedules(db)
    await db.commit()
    return {"corregidas": corregidas}


@router.get("/{session_id}", response_model=SesionAgenda)
async def obtener_sesion(
    session_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    sesion = await get_sesion(db, session_id)
    validar_acceso_orden(ctx, sesion.orden)
    return _agenda_item(sesion)


@router.post("/{session_id}/transicion", response_model=SesionRead)
async def cambiar_estado(
    session_id: int,
    payload: TransicionIn,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    sesion = await transition_session(db, ctx, session_id, payload.estado.value, payload.notas_cancelacion)
    await db.commit()
    return sesion


@router.post("/{session_id}/completar", response_model=CompletadoPendienteRead, status_code=201)
async def iniciar_completado(
    session_id: int,
    payload: CompletadoIn,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    pendiente = await start_completion(db, ctx, session_id, payload.estado_objetivo.value)
    await db.commit()
    return pendiente


@router.delete("/{session_id}/completar", status_code=204)
async def abandonar_completado(
    session_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    await abandon_completion(db, ctx, session_id)
    await db.commit()


@router.post("/{session_id}/completar/reanudar", response_model=SesionRead)
async def reanudar_completado(
    session_id: int,
    payload: ResumeIn,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    objetivo = payload.estado_objetivo.value if payload.estado_objetivo else None
    sesion = await resume_completion(db, ctx, session_id, objetivo)
    await db.commit()
    return sesion


@router.post("/{session_id}/reprogramar", response_model=ReprogramacionOut, status_code=201)
async def reprogramar(
    session_id: int,
    payload: ReprogramarIn,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    original, sucesora = await reschedule_session(db, ctx, session_id, payload.fecha, payload.hora_inicio)
    await db.commit()
    return ReprogramacionOut(
        original=SesionRead.model_validate(original),
        sucesora=SesionRead.model_validate(sucesora),
    )
