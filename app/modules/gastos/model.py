from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, model_validator
from enum import Enum


class TipoGastoEnum(str, Enum):
    COMBUSTIBLE = "Combustible"
    PEAJE = "Peaje"
    PARQUEADERO = "Parqueadero"
    LAVADO = "Lavado"
    VIATICOS = "Viaticos"
    MANTENIMIENTO = "Mantenimiento"
    PERSONALIZADO = "Personalizado"


class EstadoGasto(str, Enum):
    NO_LIQUIDADO = "no_liquidado"
    LIQUIDADO = "liquidado"


class DetalleGasto(BaseModel):
    tipo_gasto: str = Field(..., description="Tipo de gasto (usar TipoGastoEnum o personalizado)")
    tipo_gasto_personalizado: Optional[str] = Field(None, description="Descripción si tipo_gasto es 'Personalizado'")
    valor: float = Field(..., gt=0, description="Valor del gasto")
    observacion: Optional[str] = Field(None, max_length=500)


class GastoOperacional(BaseModel):
    company_id: str
    vehiculo_id: str = Field(..., description="Vehículo al que se imputa el gasto")
    placa: Optional[str] = None
    solicitud_id: Optional[str] = Field(None, description="Solicitud a la que se vincula el gasto")
    fecha_gasto: datetime = Field(default_factory=datetime.now)
    detalles_gastos: List[DetalleGasto] = Field(..., min_length=1)
    total: float = 0
    estado: EstadoGasto = Field(default=EstadoGasto.NO_LIQUIDADO, description="Se liquida al aprobar la preliquidación")
    preliquidacion_id: Optional[str] = None
    fecha_registro: datetime = Field(default_factory=datetime.now)
    usuario_registro: Optional[str] = None

    @model_validator(mode="after")
    def calcular_total(self):
        self.total = round(sum(d.valor for d in self.detalles_gastos), 2)
        return self

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "company_id": "6650c0ffee0000000000aaaa",
                "vehiculo_id": "6650c0ffee0000000000cccc",
                "placa": "ABC123",
                "solicitud_id": "6650c0ffee0000000000dddd",
                "detalles_gastos": [
                    {"tipo_gasto": "Combustible", "valor": 150000},
                    {"tipo_gasto": "Peaje", "valor": 24000}
                ]
            }
        }
