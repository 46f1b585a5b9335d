import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import validar_acceso_orden
from app.auth.deps import ContextoSesion, get_contexto, require_admin
from app.core.errors import ErrorAutorizacion, NoEncontrado
from app.db.database import get_db
from app.db.models import OrdenMedica, Paciente
from app.schemas.ordenes_schema import OrdenRead
from app.schemas.pacientes_schema import DocumentoRead, PacienteCreate, PacienteRead, PacienteUpdate, TipoDocumento
from app.services.documentos import borrar_archivo_documento, eliminar_documento, listar_documentos, subir_documento

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_paciente(db: AsyncSession, patient_id: int) -> Paciente:
    obj = await db.get(Paciente, patient_id)
    if not obj:
        raise NoEncontrado("Paciente no encontrado")
    return obj


async def _validar_acceso_paciente(db: AsyncSession, ctx: ContextoSesion, patient_id: int) -> None:
    """El terapeuta sólo ve pacientes con alguna orden suya."""
    if ctx.es_admin:
        return
    tiene = (await db.execute(
        select(OrdenMedica.id)
        .where(OrdenMedica.patient_id == patient_id, OrdenMedica.therapist_id == ctx.therapist_id)
        .limit(1)
    )).scalar_one_or_none()
    if not tiene:
        raise ErrorAutorizacion()


@router.get("", response_model=List[PacienteRead])
async def listar_pacientes(
    q: Optional[str] = Query(None, description="Busca por nombre o cédula"),
    activo: Optional[bool] = Query(True),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Paciente).order_by(Paciente.nombre_completo)
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(or_(Paciente.nombre_completo.ilike(like), Paciente.cedula.ilike(like)))
    if activo is not None:
        stmt = stmt.where(Paciente.activo.is_(activo))
    if not ctx.es_admin:
        stmt = stmt.where(
            Paciente.id.in_(select(OrdenMedica.patient_id).where(OrdenMedica.therapist_id == ctx.therapist_id))
        )
    stmt = stmt.offset(skip).limit(limit)
    return (await db.execute(stmt)).scalars().all()


@router.post("", response_model=PacienteRead, status_code=201)
async def crear_paciente(
    payload: PacienteCreate,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    obj = Paciente(**payload.model_dump(mode="json", exclude={"fecha_nacimiento"}),
                   fecha_nacimiento=payload.fecha_nacimiento,
                   activo=True,
                   created_by=ctx.user_id)
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    logger.info("Paciente %s creado", obj.id)
    return obj


@router.get("/{patient_id}", response_model=PacienteRead)
async def obtener_paciente(
    patient_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    obj = await _get_paciente(db, patient_id)
    await _validar_acceso_paciente(db, ctx, patient_id)
    return obj


@router.put("/{patient_id}", response_model=PacienteRead)
async def editar_paciente(
    patient_id: int,
    payload: PacienteUpdate,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    obj = await _get_paciente(db, patient_id)
    cambios = payload.model_dump(mode="json", exclude_unset=True, exclude={"fecha_nacimiento"})
    for k, v in cambios.items():
        setattr(obj, k, v)
    if payload.fecha_nacimiento is not None:
        obj.fecha_nacimiento = payload.fecha_nacimiento
    await db.commit()
    await db.refresh(obj)
    return obj


@router.post("/{patient_id}/desactivar", response_model=PacienteRead)
async def desactivar_paciente(
    patient_id: int,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    obj = await _get_paciente(db, patient_id)
    obj.activo = False
    await db.commit()
    await db.refresh(obj)
    logger.info("Paciente %s desactivado por user_id=%s", patient_id, ctx.user_id)
    return obj


@router.get("/{patient_id}/ordenes", response_model=List[OrdenRead])
async def ordenes_del_paciente(
    patient_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    await _get_paciente(db, patient_id)
    ordenes = (await db.execute(
        select(OrdenMedica)
        .where(OrdenMedica.patient_id == patient_id)
        .order_by(OrdenMedica.id.desc())
    )).scalars().all()
    if ctx.es_admin:
        return ordenes
    visibles = []
    for o in ordenes:
        try:
            validar_acceso_orden(ctx, o)
        except ErrorAutorizacion:
            continue
        visibles.append(o)
    return visibles


# ---------- Documentos ----------
@router.get("/{patient_id}/documentos", response_model=List[DocumentoRead])
async def documentos_del_paciente(
    patient_id: int,
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    await _get_paciente(db, patient_id)
    await _validar_acceso_paciente(db, ctx, patient_id)
    return await listar_documentos(db, patient_id)


@router.post("/{patient_id}/documentos", response_model=DocumentoRead, status_code=201)
async def subir_documento_paciente(
    patient_id: int,
    archivo: UploadFile = File(...),
    tipo: TipoDocumento = Form(TipoDocumento.otro),
    nombre: Optional[str] = Form(None),
    ctx: ContextoSesion = Depends(get_contexto),
    db: AsyncSession = Depends(get_db),
):
    await _validar_acceso_paciente(db, ctx, patient_id)
    doc = await subir_documento(db, ctx, patient_id, archivo, tipo.value, nombre)
    await db.commit()
    return doc


@router.delete("/documentos/{documento_id}", status_code=204)
async def borrar_documento(
    documento_id: int,
    ctx: ContextoSesion = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rel_path = await eliminar_documento(db, ctx, documento_id)
    await db.commit()
    await borrar_archivo_documento(documento_id, rel_path)
