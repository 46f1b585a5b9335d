from __future__ import annotations
from datetime import date, time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Ubicacion(str, Enum):
    intramural = "intramural"
    domiciliaria = "domiciliaria"


class EstadoSesion(str, Enum):
    programada = "programada"
    completada = "completada"
    cancelada = "cancelada"
    reprogramada = "reprogramada"
    plan_casero = "plan_casero"


class EstadoDestino(str, Enum):
    completada = "completada"
    cancelada = "cancelada"
    plan_casero = "plan_casero"


class EstadoCompletado(str, Enum):
    completada = "completada"
    plan_casero = "plan_casero"


class SesionRead(BaseModel):
    id: int
    medical_order_id: int
    numero_sesion: int
    fecha_programada: date
    hora_inicio: time
    hora_fin: Optional[time]
    ubicacion: Ubicacion
    estado: EstadoSesion
    notas_cancelacion: Optional[str]
    reprogramada_de: Optional[int]
    reprogramada_a: Optional[int]

    class Config:
        from_attributes = True


class SesionAgenda(SesionRead):
    """Sesión con datos de la orden para armar la agenda."""
    patient_id: int
    paciente: str
    therapist_id: int
    terapeuta: str
    especialidad: str
    total_sesiones: int


class TransicionIn(BaseModel):
    estado: EstadoDestino
    notas_cancelacion: Optional[str] = Field(None, max_length=2000)


class CompletadoIn(BaseModel):
    estado_objetivo: EstadoCompletado = EstadoCompletado.completada


class ResumeIn(BaseModel):
    estado_objetivo: Optional[EstadoCompletado] = None


class CompletadoPendienteRead(BaseModel):
    id: int
    session_id: int
    estado_objetivo: EstadoCompletado
    created_by: int

    class Config:
        from_attributes = True


class ReprogramarIn(BaseModel):
    fecha: date
    hora_inicio: time


class ReprogramacionOut(BaseModel):
    original: SesionRead
    sucesora: SesionRead
