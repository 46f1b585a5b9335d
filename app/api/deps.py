from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ContextoSesion
from app.core.errors import ErrorAutorizacion, NoEncontrado
from app.db.models import OrdenMedica


def validar_acceso_orden(ctx: ContextoSesion, orden: OrdenMedica) -> None:
    """Lectura: el admin ve todo; el terapeuta sólo sus órdenes."""
    if ctx.es_admin:
        return
    if ctx.therapist_id is None or ctx.therapist_id != orden.therapist_id:
        raise ErrorAutorizacion()


async def get_orden_visible(db: AsyncSession, ctx: ContextoSesion, order_id: int) -> OrdenMedica:
    orden = await db.get(OrdenMedica, order_id)
    if not orden:
        raise NoEncontrado("Orden no encontrada")
    validar_acceso_orden(ctx, orden)
    return orden
