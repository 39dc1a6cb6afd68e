from datetime import datetime
from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, Field


class StatusSolicitud(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ServiceStatus(str, Enum):
    SIN_ASIGNACION = "sin_asignacion"
    NOT_STARTED = "not-started"
    STARTED = "started"
    FINISHED = "finished"


class AccountingStatus(str, Enum):
    NO_INICIADO = "no_iniciado"
    PENDIENTE_OPERACIONAL = "pendiente_operacional"
    OPERACIONAL_COMPLETO = "operacional_completo"
    PREFACTURA_PENDIENTE = "prefactura_pendiente"
    LISTO_PARA_FACTURACION = "listo_para_facturacion"
    FACTURADO = "facturado"


ORDEN_ACCOUNTING = [estado.value for estado in AccountingStatus]


def avanzar_accounting(actual: Optional[str], objetivo: str) -> str:
    """El estado contable solo avanza; nunca retrocede por esta vía."""
    actual = actual or AccountingStatus.NO_INICIADO.value
    if ORDEN_ACCOUNTING.index(objetivo) > ORDEN_ACCOUNTING.index(actual):
        return objetivo
    return actual


class DocumentoContable(BaseModel):
    numero: Optional[str] = None
    fecha: Optional[datetime] = None


class PagoVehiculo(BaseModel):
    valor: float = Field(..., gt=0)
    fecha: datetime = Field(default_factory=datetime.now)
    referencia: Optional[str] = None


class AccountingVehiculo(BaseModel):
    prefactura: Optional[DocumentoContable] = None
    preliquidacion: Optional[DocumentoContable] = None
    factura: Optional[DocumentoContable] = None
    doc_equivalente: Optional[DocumentoContable] = None
    pagos: List[PagoVehiculo] = Field(default_factory=list)
    notas: Optional[str] = None


class Solicitud(BaseModel):
    company_id: str
    he: Optional[str] = None
    cliente_id: str
    cliente_nombre: Optional[str] = None
    contacto_nombre: Optional[str] = None
    contacto_telefono: Optional[str] = None
    contacto_email: Optional[str] = None

    fecha: datetime
    hora_inicio: str
    fecha_final: Optional[datetime] = None
    hora_final: Optional[str] = None
    total_horas: Optional[float] = None

    origen: str
    destino: str
    origen_location_id: Optional[str] = None
    destino_location_id: Optional[str] = None
    descripcion: Optional[str] = None

    n_pasajeros: int = Field(..., gt=0)
    tipo_vehiculo: Optional[str] = None

    estimated_km: Optional[float] = None
    estimated_hours: Optional[float] = None
    pricing_mode: Optional[str] = None
    pricing_rate: Optional[float] = None
    estimated_price: Optional[float] = None

    vehiculo_id: Optional[str] = None
    placa: Optional[str] = None
    flota: Optional[str] = None
    conductor_id: Optional[str] = None
    conductor: Optional[str] = None
    conductor_phone: Optional[str] = None
    vehicle_assignments: List[dict] = Field(default_factory=list)

    valor_a_facturar: Optional[float] = Field(None, description="Ingreso; None hasta que comercial lo asigne")
    valor_cancelado: Optional[float] = Field(None, description="Costo; None hasta que coordinación lo asigne")
    total_gastos_operacionales: float = 0
    utilidad: float = 0
    porcentaje_utilidad: float = 0

    contract_id: Optional[str] = None
    contract_charge_mode: str = "no_contract"
    contract_charge_amount: float = 0

    status: StatusSolicitud = StatusSolicitud.PENDING
    service_status: ServiceStatus = ServiceStatus.SIN_ASIGNACION
    accounting_status: AccountingStatus = AccountingStatus.NO_INICIADO

    prefactura: Optional[dict] = None
    n_factura: Optional[str] = None

    created: datetime = Field(default_factory=datetime.now)
    created_by: Optional[str] = None

    class Config:
        use_enum_values = True
