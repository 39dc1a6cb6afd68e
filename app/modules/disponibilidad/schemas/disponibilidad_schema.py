from datetime import date
from typing import Optional, List
from pydantic import BaseModel, Field
from app.modules.disponibilidad.models.asignacion import ItemPlan


class BuscarDisponiblesRequest(BaseModel):
    fecha: date
    hora_inicio: str = Field(..., description="HH:MM")
    pasajeros: int = Field(..., gt=0)
    tipo_vehiculo: Optional[str] = None


class SugerirRequest(BaseModel):
    pasajeros: int = Field(..., gt=0)
    tipo_vehiculo: Optional[str] = None
    seats_preferidos: Optional[int] = Field(None, gt=0)


class SugerenciaResponse(BaseModel):
    can_fulfill: bool
    total_asignado: int
    faltante: int
    plan: List[ItemPlan]
