from fastapi import APIRouter

from app.api.v1.pacientes  import router as pacientes_router
from app.api.v1.terapeutas import router as terapeutas_router
from app.api.v1.ordenes    import router as ordenes_router
from app.api.v1.sesiones   import router as sesiones_router
from app.api.v1.evoluciones import router as evoluciones_router
from app.api.v1.nomina     import router as nomina_router


api_router = APIRouter()
api_router.include_router(pacientes_router,   prefix="/pacientes",   tags=["Pacientes"])
api_router.include_router(terapeutas_router,  prefix="/terapeutas",  tags=["Terapeutas"])
api_router.include_router(ordenes_router,     prefix="/ordenes",     tags=["Órdenes médicas"])
api_router.include_router(sesiones_router,    prefix="/sesiones",    tags=["Sesiones"])
api_router.include_router(evoluciones_router, prefix="/evoluciones", tags=["Evoluciones"])
api_router.include_router(nomina_router,      prefix="/nomina",      tags=["Nómina"])
