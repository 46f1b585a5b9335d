from __future__ import annotations
from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.schemas.sesiones_schema import SesionRead, Ubicacion
from app.schemas.terapeutas_schema import Especialidad


class OrdenCreate(BaseModel):
    patient_id: int
    therapist_id: int
    especialidad: Especialidad
    total_sesiones: int = Field(..., ge=1, le=100)
    ubicacion: Ubicacion = Ubicacion.intramural
    codigo_orden: Optional[str] = Field(None, max_length=50)
    diagnostico: Optional[str] = None
    observaciones: Optional[str] = None
    # agenda
    fecha_inicio: date
    hora_inicio: time
    hora_fin: Optional[time] = None
    dias_semana: List[int] = Field(..., min_length=1, description="ISO 1=lunes..7=domingo (0 = domingo)")

    @field_validator("dias_semana")
    @classmethod
    def _dias_validos(cls, v: List[int]) -> List[int]:
        if any(d < 0 or d > 7 for d in v):
            raise ValueError("dias_semana admite valores 0..7")
        return v


class OrdenRead(BaseModel):
    id: int
    patient_id: int
    therapist_id: int
    especialidad: Especialidad
    codigo_orden: Optional[str]
    diagnostico: Optional[str]
    observaciones: Optional[str]
    total_sesiones: int
    sesiones_completadas: int
    ubicacion: Ubicacion
    estado: str
    closed_at: Optional[datetime]

    class Config:
        from_attributes = True


class OrdenDetalle(OrdenRead):
    paciente: str
    terapeuta: str
    sesiones: List[SesionRead] = []
    tiene_evaluacion_inicial: bool = False


class TransferenciaIn(BaseModel):
    to_therapist_id: int
    motivo: str = Field(..., min_length=1, max_length=2000)


class TransferenciaRead(BaseModel):
    id: int
    medical_order_id: int
    from_therapist_id: int
    to_therapist_id: int
    motivo: str
    transferred_by: int

    class Config:
        from_attributes = True


class EvaluacionInicialCreate(BaseModel):
    diagnostico_cie10: str = Field(..., min_length=10)
    codigo_cie10: Optional[str] = Field(None, max_length=20)
    funciones_corporales: Optional[str] = None
    estructuras_corporales: Optional[str] = None
    actividades_participacion: Optional[str] = None
    factores_ambientales: Optional[str] = None
    factores_personales: Optional[str] = None
    objetivos_generales: str = Field(..., min_length=10)
    objetivos_especificos: Optional[str] = None
    plan_intervencion: str = Field(..., min_length=10)
    frecuencia_sesiones: Optional[str] = Field(None, max_length=100)
    duracion_estimada: Optional[str] = Field(None, max_length=100)


class EvaluacionInicialRead(EvaluacionInicialCreate):
    id: int
    medical_order_id: int
    therapist_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
