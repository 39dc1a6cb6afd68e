from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, Field


class ModoConfirmacion(str, Enum):
    # suma exacta de pasajeros (crear / aceptar)
    EXACTO = "exacto"
    # basta con cubrir los pasajeros (asignación posterior a la sugerencia)
    CUBRIR = "cubrir"


class ChargeMode(str, Enum):
    WITHIN_CONTRACT = "within_contract"
    OUTSIDE_CONTRACT = "outside_contract"
    NO_CONTRACT = "no_contract"


class ItemPlan(BaseModel):
    vehiculo_id: str
    placa: str
    seats: int
    flota: Optional[str] = None
    prioridad_flota: int = 0
    assigned_passengers: int
    conductor_id: Optional[str] = None


class VehiculoEnServicio(BaseModel):
    vehiculo_id: str
    placa: str
    seats: int
    motivo: str


class PlanAsignacion(BaseModel):
    can_fulfill: bool
    vehiculos_necesarios: int
    total_asignado: int
    faltante: int
    plan: List[ItemPlan] = Field(default_factory=list)
    en_servicio: List[VehiculoEnServicio] = Field(default_factory=list)
