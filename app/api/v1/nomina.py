import logging
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ContextoSesion, require_admin
from app.db.database import get_db
from app.db.models import DetalleNomina
from app.schemas.nomina_schema import CalculoOut, DetalleRead, PeriodoCreate, PeriodoRead, VersionIn
from app.services.exports import build_excel_nomina
from app.services.nomina import (
    close_period, compute_payroll, create_period, detalles_periodo, get_periodo, listar_periodos, mark_period_paid,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _detalle_out(d: DetalleNomina) -> DetalleRead:
    out = DetalleRead.model_validate(d)
    out.terapeuta_nombre = d.terapeuta.nombre_completo
    out.terapeuta_especialidad = d.terapeuta.especialidad
    return out


@router.get("/periodos", response_model=List[PeriodoRead])
async def periodos(
    anio: Optional[int] = Query(None, ge=1900, le=3000),
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await listar_periodos(db, anio)


@router.post("/periodos", response_model=PeriodoRead, status_code=201)
async def crear_periodo(
    payload: PeriodoCreate,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    periodo = await create_period(db, ctx, payload.mes, payload.anio, payload.notas)
    await db.commit()
    return periodo


@router.get("/periodos/{period_id}", response_model=PeriodoRead)
async def obtener_periodo(
    period_id: int,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await get_periodo(db, period_id)


@router.post("/periodos/{period_id}/calcular", response_model=CalculoOut)
async def calcular(
    period_id: int,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    _, advertencias = await compute_payroll(db, period_id)
    await db.commit()
    detalles = await detalles_periodo(db, period_id)
    return CalculoOut(
        period_id=period_id,
        detalles=[_detalle_out(d) for d in detalles],
        advertencias=advertencias,
        total_bruto=sum((d.total_bruto for d in detalles), Decimal("0")),
    )


@router.post("/periodos/{period_id}/cerrar", response_model=PeriodoRead)
async def cerrar(
    period_id: int,
    payload: VersionIn,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    periodo = await close_period(db, ctx, period_id, payload.version)
    await db.commit()
    return periodo


@router.post("/periodos/{period_id}/pagar", response_model=PeriodoRead)
async def pagar(
    period_id: int,
    payload: VersionIn,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    periodo = await mark_period_paid(db, ctx, period_id, payload.version)
    await db.commit()
    return periodo


@router.get("/periodos/{period_id}/detalles", response_model=List[DetalleRead])
async def detalles(
    period_id: int,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await get_periodo(db, period_id)
    return [_detalle_out(d) for d in await detalles_periodo(db, period_id)]


@router.get("/periodos/{period_id}/excel")
async def exportar_excel(
    period_id: int,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    periodo = await get_periodo(db, period_id)
    filas = [
        {
            "terapeuta": d.terapeuta.nombre_completo,
            "especialidad": d.terapeuta.especialidad,
            "sesiones_intramural": d.sesiones_intramural,
            "sesiones_domiciliaria": d.sesiones_domiciliaria,
            "subtotal_intramural": d.subtotal_intramural,
            "subtotal_domiciliaria": d.subtotal_domiciliaria,
            "total_bruto": d.total_bruto,
        }
        for d in await detalles_periodo(db, period_id)
    ]
    content = build_excel_nomina({"mes": periodo.mes, "anio": periodo.anio, "estado": periodo.estado}, filas)

    filename = f"nomina_{periodo.anio:04d}_{periodo.mes:02d}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"
    return StreamingResponse(
        BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
