from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class GenerarMultipleRequest(BaseModel):
    solicitud_ids: List[str] = Field(..., min_length=2)


class AprobarPrefacturaRequest(BaseModel):
    reenviar: bool = Field(False, description="Permite repetir la aprobación sin volver a registrar al aprobador")
    notas: Optional[str] = None


class NotasRequest(BaseModel):
    notas: Optional[str] = None


class HistorialPrefacturaResponse(BaseModel):
    id: str
    solicitud_id: str
    numero: str
    tipo: str
    fecha: datetime
    usuario: Optional[str] = None
    estado_resultante: Optional[str] = None
    notas: Optional[str] = None
