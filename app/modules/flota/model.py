from datetime import datetime
from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, Field


class FlotaEnum(str, Enum):
    PROPIO = "propio"
    AFILIADO = "afiliado"
    EXTERNO = "externo"


# propio > afiliado > externo al asignar vehículos
PRIORIDAD_FLOTA = {
    FlotaEnum.PROPIO.value: 3,
    FlotaEnum.AFILIADO.value: 2,
    FlotaEnum.EXTERNO.value: 1,
}


class Propietario(BaseModel):
    tipo: str = Field(..., description="Company o User")
    nombre: str
    company_id: Optional[str] = None
    user_id: Optional[str] = None
    documento: Optional[str] = None
    telefono: Optional[str] = None
    email: Optional[str] = None


class Vehiculo(BaseModel):
    placa: str = Field(..., min_length=3, max_length=10, description="Placa del vehículo")
    seats: int = Field(..., gt=0, description="Capacidad de pasajeros")
    tipo: str = Field(..., description="bus, buseta, van, camioneta, etc.")
    flota: FlotaEnum = Field(default=FlotaEnum.PROPIO)
    company_id: str
    owner: Optional[Propietario] = None
    driver_id: Optional[str] = Field(None, description="Conductor principal")
    conductores_secundarios: List[str] = Field(default_factory=list)
    activo: bool = Field(default=True)
    fecha_registro: datetime = Field(default_factory=datetime.now)

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "placa": "ABC123",
                "seats": 40,
                "tipo": "bus",
                "flota": "propio",
                "company_id": "6650c0ffee0000000000aaaa",
                "owner": {"tipo": "Company", "nombre": "Transportes del Valle"},
                "driver_id": "6650c0ffee0000000000bbbb",
                "conductores_secundarios": []
            }
        }

    def conductores_permitidos(self) -> List[str]:
        permitidos = [self.driver_id] if self.driver_id else []
        return permitidos + [c for c in self.conductores_secundarios if c not in permitidos]
