# app/services/documentos.py
import logging

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ContextoSesion
from app.core.errors import ErrorAutorizacion, ErrorValidacion, NoEncontrado
from app.db.models import DocumentoPaciente, Paciente
from app.utils.main import remove_media_file, save_upload_for_paciente

logger = logging.getLogger(__name__)

TIPOS_DOCUMENTO = ("orden_medica", "diagnostico", "examen", "imagen", "consentimiento", "otro")
MAX_BYTES = 20 * 1024 * 1024


async def subir_documento(
    db: AsyncSession,
    ctx: ContextoSesion,
    patient_id: int,
    archivo: UploadFile,
    tipo: str,
    nombre: str | None = None,
) -> DocumentoPaciente:
    if tipo not in TIPOS_DOCUMENTO:
        raise ErrorValidacion(f"Tipo de documento inválido: {tipo}")
    if not await db.get(Paciente, patient_id):
        raise NoEncontrado("Paciente no encontrado")

    guardado = await save_upload_for_paciente(patient_id, archivo)
    if not guardado:
        raise ErrorValidacion("Falta el archivo")
    rel_path, filename, size = guardado
    if size > MAX_BYTES:
        await remove_media_file(rel_path)
        raise ErrorValidacion("El archivo supera el tamaño máximo (20 MB)")

    doc = DocumentoPaciente(
        patient_id=patient_id,
        nombre=(nombre or archivo.filename or filename)[:200],
        tipo=tipo,
        file_url=rel_path,
        file_type=getattr(archivo, "content_type", None),
        size=size,
        uploaded_by=ctx.user_id,
    )
    db.add(doc)
    await db.flush()
    await db.refresh(doc)
    logger.info("Documento %s subido para paciente %s (%s bytes)", doc.id, patient_id, size)
    return doc


async def listar_documentos(db: AsyncSession, patient_id: int) -> list[DocumentoPaciente]:
    stmt = (
        select(DocumentoPaciente)
        .where(DocumentoPaciente.patient_id == patient_id)
        .order_by(DocumentoPaciente.created_at.desc(), DocumentoPaciente.id.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def eliminar_documento(db: AsyncSession, ctx: ContextoSesion, documento_id: int) -> str:
    """Borra la fila y devuelve la ruta del archivo; el archivo se quita después del commit."""
    if not ctx.es_admin:
        raise ErrorAutorizacion("Solo un administrador puede eliminar documentos")
    doc = await db.get(DocumentoPaciente, documento_id)
    if not doc:
        raise NoEncontrado("Documento no encontrado")
    rel_path = doc.file_url
    await db.delete(doc)
    await db.flush()
    logger.info("Documento %s eliminado por user_id=%s", documento_id, ctx.user_id)
    return rel_path


async def borrar_archivo_documento(documento_id: int, rel_path: str) -> None:
    if not await remove_media_file(rel_path):
        logger.warning("Documento %s: no se encontró el archivo %s", documento_id, rel_path)
