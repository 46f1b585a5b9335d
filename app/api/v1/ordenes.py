import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_orden_visible
from app.auth.deps import ContextoSesion, get_contexto, require_admin
from app.core.errors import NoEncontrado
from app.db.database import get_db
from app.db.models import OrderTransfer, OrdenMedica, Sesion
from app.schemas.ordenes_schema import (
    EvaluacionInicialCreate, EvaluacionInicialRead, OrdenCreate, OrdenDetalle, OrdenRead,
    TransferenciaIn, TransferenciaRead,
)
from app.schemas.sesiones_schema import SesionRead
from app.services.agenda import crear_orden_con_sesiones, transferir_orden
from app.services.evoluciones import crear_evaluacion_inicial, get_evaluacion_inicial

logger = logging.getLogger(__name__)

router = APIRouter()


async def _detalle(db: AsyncSession, orden: OrdenMedica) -> OrdenDetalle:
    sesiones = (await db.execute(
        select(Sesion)
        .where(Sesion.medical_order_id == orden.id)
        .order_by(Sesion.numero_sesion, Sesion.id)
    )).scalars().all()
    evaluacion = await get_evaluacion_inicial(db, orden.id)
    return OrdenDetalle(
        **OrdenRead.model_validate(orden).model_dump(),
        paciente=orden.paciente.nombre_completo,
        terapeuta=orden.terapeuta.nombre_completo,
        sesiones=[SesionRead.model_validate(s) for s in sesiones],
        tiene_evaluacion_inicial=evaluacion is not None,
    )


@router.post("", response_model=OrdenDetalle, status_code=201)
async def crear_orden(
    payload: OrdenCreate,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    orden, _ = await crear_orden_con_sesiones(
        db,
        created_by=ctx.user_id,
        patient_id=payload.patient_id,
        therapist_id=payload.therapist_id,
        especialidad=payload.especialidad.value,
        total_sesiones=payload.total_sesiones,
        ubicacion=payload.ubicacion.value,
        fecha_inicio=payload.fecha_inicio,
        hora_inicio=payload.hora_inicio,
        hora_fin=payload.hora_fin,
        dias_semana=payload.dias_semana,
        codigo_orden=payload.codigo_orden,
        diagnostico=payload.diagnostico,
        observaciones=payload.observaciones,
    )
    await db.commit()
    await db.refresh(orden)
    return await _detalle(db, orden)


@router.get("", response_model=List[OrdenRead])
async def listar_ordenes(
    estado: Optional[str] = Query(None, pattern="^(activa|cerrada)$"),
    patient_id: Optional[int] = Query(None),
    therapist_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(OrdenMedica).order_by(OrdenMedica.id.desc())
    if not ctx.es_admin:
        therapist_id = ctx.therapist_id
    if therapist_id is not None:
        stmt = stmt.where(OrdenMedica.therapist_id == therapist_id)
    if estado is not None:
        stmt = stmt.where(OrdenMedica.estado == estado)
    if patient_id is not None:
        stmt = stmt.where(OrdenMedica.patient_id == patient_id)
    stmt = stmt.offset(skip).limit(limit)
    return (await db.execute(stmt)).scalars().all()


@router.get("/{order_id}", response_model=OrdenDetalle)
async def obtener_orden(
    order_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    orden = await get_orden_visible(db, ctx, order_id)
    return await _detalle(db, orden)


@router.post("/{order_id}/transferir", response_model=TransferenciaRead, status_code=201)
async def transferir(
    order_id: int,
    payload: TransferenciaIn,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    transferencia = await transferir_orden(
        db,
        order_id=order_id,
        to_therapist_id=payload.to_therapist_id,
        motivo=payload.motivo,
        transferred_by=ctx.user_id,
    )
    await db.commit()
    return transferencia


@router.get("/{order_id}/transferencias", response_model=List[TransferenciaRead])
async def historial_transferencias(
    order_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    await get_orden_visible(db, ctx, order_id)
    return (await db.execute(
        select(OrderTransfer)
        .where(OrderTransfer.medical_order_id == order_id)
        .order_by(OrderTransfer.id)
    )).scalars().all()


@router.post("/{order_id}/evaluacion-inicial", response_model=EvaluacionInicialRead, status_code=201)
async def registrar_evaluacion_inicial(
    order_id: int,
    payload: EvaluacionInicialCreate,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    ev = await crear_evaluacion_inicial(db, ctx, order_id, payload.model_dump())
    await db.commit()
    return ev


@router.get("/{order_id}/evaluacion-inicial", response_model=EvaluacionInicialRead)
async def ver_evaluacion_inicial(
    order_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    await get_orden_visible(db, ctx, order_id)
    ev = await get_evaluacion_inicial(db, order_id)
    if not ev:
        raise NoEncontrado("La orden no tiene evaluación inicial")
    return ev
