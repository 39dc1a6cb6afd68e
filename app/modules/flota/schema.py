from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel
from app.modules.flota.model import Propietario


class VehiculoCreate(BaseModel):
    placa: str
    seats: int
    tipo: str
    flota: str = "propio"
    owner: Optional[Propietario] = None
    driver_id: Optional[str] = None
    conductores_secundarios: List[str] = []


class VehiculoResponse(BaseModel):
    id: str
    placa: str
    seats: int
    tipo: str
    flota: str
    company_id: str
    owner: Optional[Propietario] = None
    driver_id: Optional[str] = None
    conductores_secundarios: List[str] = []
    activo: bool
    fecha_registro: datetime

    class Config:
        from_attributes = True


class ConductorInfo(BaseModel):
    id: str
    full_name: Optional[str] = None
    telefono: Optional[str] = None
    email: Optional[str] = None
