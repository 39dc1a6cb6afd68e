from datetime import datetime
from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field


class TipoContrato(str, Enum):
    FIJO = "fijo"
    LICITACION = "licitacion"
    OCASIONAL = "ocasional"


class PeriodoPresupuesto(str, Enum):
    ANIO = "anio"
    MES = "mes"
    SEMANA = "semana"
    DIA = "dia"


class PricingMode(str, Enum):
    POR_HORA = "por_hora"
    POR_KILOMETRO = "por_kilometro"
    POR_DISTANCIA = "por_distancia"
    TARIFA_AMVA = "tarifa_amva"
    POR_VIAJE = "por_viaje"
    POR_TRAYECTO = "por_trayecto"
    FIJO = "fijo"


class TipoHistorial(str, Enum):
    BUDGET_SET = "budget_set"
    SERVICE_CHARGE = "service_charge"
    MANUAL_ADJUST = "manual_adjust"


class Cobro(BaseModel):
    modo_default: Optional[PricingMode] = None
    por_hora: Optional[float] = Field(None, ge=0)
    por_kilometro: Optional[float] = Field(None, ge=0)
    por_distancia: Optional[float] = Field(None, ge=0)
    tarifa_amva: Optional[float] = Field(None, ge=0)
    por_viaje: Optional[float] = Field(None, ge=0)
    por_trayecto: Optional[float] = Field(None, ge=0)
    fijo: Optional[float] = Field(None, ge=0)

    class Config:
        use_enum_values = True


class Contrato(BaseModel):
    company_id: str
    client_id: str
    tipo_contrato: TipoContrato = TipoContrato.FIJO
    cobro: Cobro = Field(default_factory=Cobro)
    periodo_presupuesto: Optional[PeriodoPresupuesto] = None
    valor_presupuesto: Optional[float] = Field(None, ge=0, description="None = sin tope")
    valor_consumido: float = Field(default=0, ge=0)
    fecha_inicio: Optional[datetime] = None
    fecha_final: Optional[datetime] = None
    notas: Optional[str] = None
    is_active: bool = True
    version: int = 0
    created: datetime = Field(default_factory=datetime.now)
    created_by: Optional[str] = None

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "company_id": "6650c0ffee0000000000aaaa",
                "client_id": "6650c0ffee0000000000eeee",
                "tipo_contrato": "fijo",
                "cobro": {"modo_default": "por_hora", "por_hora": 120000},
                "periodo_presupuesto": "anio",
                "valor_presupuesto": 50000000,
                "valor_consumido": 0
            }
        }


class HistorialContrato(BaseModel):
    """Entrada inmutable del historial de un contrato."""
    contrato_id: str
    tipo: TipoHistorial
    fecha: datetime = Field(default_factory=datetime.now)
    usuario: Optional[str] = None
    notas: Optional[str] = None
    prev_valor_presupuesto: Optional[float] = None
    new_valor_presupuesto: Optional[float] = None
    prev_valor_consumido: Optional[float] = None
    new_valor_consumido: Optional[float] = None
    solicitud_id: Optional[str] = None
    monto: Optional[float] = None
    modo: Optional[str] = None

    class Config:
        use_enum_values = True
