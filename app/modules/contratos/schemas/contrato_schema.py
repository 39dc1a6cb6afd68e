from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from app.modules.contratos.models.contrato import (
    Cobro, PeriodoPresupuesto, PricingMode, TipoContrato
)


class ContratoCreate(BaseModel):
    client_id: str
    tipo_contrato: TipoContrato = TipoContrato.FIJO
    cobro: Cobro = Field(default_factory=Cobro)
    periodo_presupuesto: Optional[PeriodoPresupuesto] = None
    valor_presupuesto: Optional[float] = Field(None, ge=0)
    fecha_inicio: Optional[datetime] = None
    fecha_final: Optional[datetime] = None
    notas: Optional[str] = None

    class Config:
        use_enum_values = True


class ContratoUpdate(BaseModel):
    tipo_contrato: Optional[TipoContrato] = None
    periodo_presupuesto: Optional[PeriodoPresupuesto] = None
    valor_presupuesto: Optional[float] = Field(None, ge=0)
    cobro: Optional[Cobro] = None
    fecha_final: Optional[datetime] = None
    is_active: Optional[bool] = None
    notas: Optional[str] = None

    class Config:
        use_enum_values = True


class ContratoResponse(BaseModel):
    id: str
    company_id: str
    client_id: str
    tipo_contrato: str
    cobro: Cobro
    periodo_presupuesto: Optional[str] = None
    valor_presupuesto: Optional[float] = None
    valor_consumido: float
    fecha_inicio: Optional[datetime] = None
    fecha_final: Optional[datetime] = None
    notas: Optional[str] = None
    is_active: bool
    created: datetime

    class Config:
        from_attributes = True


class HistorialContratoResponse(BaseModel):
    id: str
    contrato_id: str
    tipo: str
    fecha: datetime
    usuario: Optional[str] = None
    notas: Optional[str] = None
    prev_valor_presupuesto: Optional[float] = None
    new_valor_presupuesto: Optional[float] = None
    prev_valor_consumido: Optional[float] = None
    new_valor_consumido: Optional[float] = None
    solicitud_id: Optional[str] = None
    monto: Optional[float] = None
    modo: Optional[str] = None


class EstimarPrecioRequest(BaseModel):
    modo: PricingMode
    tarifa: float
    horas: Optional[float] = None
    km: Optional[float] = None

    class Config:
        use_enum_values = True


class EstimarPrecioResponse(BaseModel):
    modo: str
    tarifa: float
    estimated_price: Optional[float] = None
