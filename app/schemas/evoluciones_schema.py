from __future__ import annotations
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class EvolucionCampos(BaseModel):
    procedimientos: Optional[str] = None
    plan_tratamiento: Optional[str] = None
    recomendaciones: Optional[str] = None
    concepto_profesional: Optional[str] = None
    evaluacion_final: Optional[str] = None


class EvolucionCreate(EvolucionCampos):
    session_id: int
    contenido: str = Field(..., min_length=10)
    es_cierre: bool = False


class EvolucionUpdate(EvolucionCampos):
    contenido: Optional[str] = Field(None, min_length=10)
    es_cierre: Optional[bool] = None


class EvolucionRead(EvolucionCampos):
    id: int
    session_id: int
    therapist_id: int
    contenido: str
    es_cierre: bool
    firma_url: Optional[str]
    bloqueado: bool
    bloqueado_at: Optional[datetime]
    created_at: datetime
    # calculados en vivo
    editable: bool = False
    horas_restantes: float = 0.0

    class Config:
        from_attributes = True
