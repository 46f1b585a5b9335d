"""
Fixtures compartidas.

La base es SQLite en memoria (aiosqlite) con StaticPool: todas las sesiones
del test ven la misma conexión. Las variables de entorno se fijan antes de
importar `app` porque `Settings` se instancia al importar.
"""
import os
import tempfile

os.environ.setdefault("JWT_SECRET", "clave-de-pruebas-no-usar-en-produccion")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="erp_media_"))
os.environ.pop("RESEND_API_KEY", None)

from datetime import date, time
from decimal import Decimal
from functools import lru_cache

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.deps import ContextoSesion
from app.core.passwords import hash_password
from app.core.security import create_access_token
from app.db.database import get_db
from app.db.models import (
    AdminProfile, Base, EvaluacionInicial, Paciente, Sesion, TarifaTerapeuta, TherapistProfile, UserRole, Usuario,
)
from app.main import app
from app.services.agenda import crear_orden_con_sesiones

CLAVE = "clave-segura-123"
LUNES = date(2026, 3, 2)


@lru_cache(maxsize=1)
def _hash_clave() -> str:
    # pbkdf2 con 480k rondas es lento; se calcula una sola vez por corrida
    return hash_password(CLAVE)


# ============================================
# BASE DE DATOS
# ============================================

@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def refrescar(db: AsyncSession) -> None:
    """Confirma y vacía el identity map; las siguientes lecturas vienen de la base."""
    await db.commit()
    db.expunge_all()


@pytest.fixture
def confirmar(db):
    async def _confirmar():
        await refrescar(db)
    return _confirmar


# ============================================
# FÁBRICAS
# ============================================

@pytest.fixture
def crear_admin(db):
    async def _crear(email="admin@clinica.com.co", nombre="Ana Administradora"):
        user = Usuario(email=email, hashed_password=_hash_clave(), activo=True)
        db.add(user)
        await db.flush()
        db.add(UserRole(user_id=user.id, role="admin"))
        perfil = AdminProfile(user_id=user.id, cedula="10000001", nombre_completo=nombre, email=email)
        db.add(perfil)
        await db.flush()
        return ContextoSesion(user_id=user.id, email=email, role="admin", profile_id=perfil.id, nombre=nombre)
    return _crear


@pytest.fixture
def crear_terapeuta(db):
    contador = {"n": 0}

    async def _crear(especialidad="fisioterapia", nombre=None, activo=True, firma=None):
        contador["n"] += 1
        n = contador["n"]
        email = f"terapeuta{n}@clinica.com.co"
        user = Usuario(email=email, hashed_password=_hash_clave(), activo=True)
        db.add(user)
        await db.flush()
        db.add(UserRole(user_id=user.id, role="terapeuta"))
        perfil = TherapistProfile(
            user_id=user.id,
            cedula=f"2000000{n}",
            nombre_completo=nombre or f"Terapeuta {n}",
            email=email,
            especialidad=especialidad,
            firma_digital_url=firma,
            activo=activo,
        )
        db.add(perfil)
        await db.flush()
        ctx = ContextoSesion(
            user_id=user.id, email=email, role="terapeuta", profile_id=perfil.id, nombre=perfil.nombre_completo,
        )
        return perfil, ctx
    return _crear


@pytest.fixture
def crear_paciente(db):
    async def _crear(nombre="Pedro Paciente", activo=True):
        paciente = Paciente(
            nombre_completo=nombre,
            cedula="30000001",
            sexo="masculino",
            fecha_nacimiento=date(2015, 6, 1),
            acudiente_nombre="María Acudiente",
            acudiente_telefono="3001234567",
            acudiente_parentesco="madre",
            activo=activo,
        )
        db.add(paciente)
        await db.flush()
        return paciente
    return _crear


@pytest.fixture
def crear_orden(db):
    async def _crear(
        terapeuta,
        paciente,
        total_sesiones=10,
        dias_semana=(1, 3, 5),
        fecha_inicio=LUNES,
        ubicacion="intramural",
        hora_inicio=time(8, 0),
        hora_fin=None,
    ):
        orden, sesiones = await crear_orden_con_sesiones(
            db,
            created_by=None,
            patient_id=paciente.id,
            therapist_id=terapeuta.id,
            especialidad=terapeuta.especialidad,
            total_sesiones=total_sesiones,
            ubicacion=ubicacion,
            fecha_inicio=fecha_inicio,
            hora_inicio=hora_inicio,
            hora_fin=hora_fin,
            dias_semana=dias_semana,
        )
        ids = [s.id for s in sesiones]
        await refrescar(db)
        return orden.id, ids
    return _crear


@pytest.fixture
def crear_evaluacion(db):
    async def _crear(order_id, therapist_id):
        db.add(EvaluacionInicial(
            medical_order_id=order_id,
            therapist_id=therapist_id,
            diagnostico_cie10="Parálisis cerebral espástica",
            objetivos_generales="Mejorar la marcha independiente",
            plan_intervencion="Fortalecimiento y reeducación de la marcha",
        ))
        await refrescar(db)
    return _crear


@pytest.fixture
def cargar_tarifa(db):
    async def _crear(therapist_id, especialidad="fisioterapia", **valores):
        tarifa = TarifaTerapeuta(therapist_id=therapist_id, especialidad=especialidad, **valores)
        db.add(tarifa)
        await db.flush()
        return tarifa
    return _crear


@pytest.fixture
def marcar_sesiones(db):
    """Fuerza el estado de sesiones sin pasar por la máquina de estados."""
    async def _marcar(session_ids, estado):
        await db.execute(update(Sesion).where(Sesion.id.in_(list(session_ids))).values(estado=estado))
        await refrescar(db)
    return _marcar


@pytest.fixture
def sesiones_de(db):
    async def _listar(order_id):
        return list((await db.execute(
            select(Sesion).where(Sesion.medical_order_id == order_id).order_by(Sesion.numero_sesion, Sesion.id)
        )).scalars().all())
    return _listar


# ============================================
# HTTP
# ============================================

def bearer(ctx: ContextoSesion) -> dict:
    return {"Authorization": f"Bearer {create_access_token(sub=ctx.user_id, role=ctx.role)}"}


@pytest.fixture
def auth_headers():
    return bearer


@pytest.fixture
def dinero():
    return lambda v: Decimal(str(v)).quantize(Decimal("0.01"))
