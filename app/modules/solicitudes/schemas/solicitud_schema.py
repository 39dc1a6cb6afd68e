from datetime import date, datetime
from typing import Optional, List, Generic, TypeVar
from pydantic import BaseModel, Field, model_validator
from app.modules.disponibilidad.models.asignacion import ChargeMode
from app.modules.contratos.models.contrato import PricingMode
from app.modules.solicitudes.models.solicitud import DocumentoContable, PagoVehiculo


class SolicitudClienteCreate(BaseModel):
    fecha: date
    hora_inicio: str = Field(..., description="HH:MM")
    origen: str = Field(..., min_length=1)
    destino: str = Field(..., min_length=1)
    n_pasajeros: int = Field(..., gt=0)
    tipo_vehiculo: Optional[str] = None
    descripcion: Optional[str] = None
    contacto_nombre: Optional[str] = None
    contacto_telefono: Optional[str] = None
    estimated_km: Optional[float] = Field(None, ge=0)
    estimated_hours: Optional[float] = Field(None, ge=0)


class AsignacionVehiculoInput(BaseModel):
    vehiculo_id: Optional[str] = None
    placa: Optional[str] = None
    conductor_id: Optional[str] = None
    assigned_passengers: int = Field(..., gt=0)
    contract_id: Optional[str] = None
    contract_charge_mode: Optional[ChargeMode] = None
    contract_charge_amount: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def requiere_vehiculo(self):
        if not self.vehiculo_id and not self.placa:
            raise ValueError("Cada asignación requiere vehiculo_id o placa")
        return self

    class Config:
        use_enum_values = True


class AceptarSolicitudRequest(BaseModel):
    """Forma simple (placa + conductor) o múltiple (vehicle_assignments)."""
    placa: Optional[str] = None
    conductor_id: Optional[str] = None
    vehicle_assignments: Optional[List[AsignacionVehiculoInput]] = None

    he: Optional[str] = None
    he_prefix: Optional[str] = None

    origen: Optional[str] = None
    destino: Optional[str] = None

    contract_id: Optional[str] = None
    contract_charge_mode: ChargeMode = ChargeMode.NO_CONTRACT
    contract_charge_amount: float = Field(0, ge=0)

    pricing_mode: Optional[PricingMode] = None
    estimated_km: Optional[float] = Field(None, ge=0)
    estimated_hours: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def requiere_asignacion(self):
        if not self.placa and not self.vehicle_assignments:
            raise ValueError("Debe indicar la placa o la lista de vehículos asignados")
        return self

    class Config:
        use_enum_values = True


class SolicitudCoordinadorCreate(AceptarSolicitudRequest):
    cliente_id: str
    fecha: date
    hora_inicio: str
    origen: str = Field(..., min_length=1)
    destino: str = Field(..., min_length=1)
    n_pasajeros: int = Field(..., gt=0)
    tipo_vehiculo: Optional[str] = None
    descripcion: Optional[str] = None
    contacto_nombre: Optional[str] = None
    contacto_telefono: Optional[str] = None
    valor_a_facturar: Optional[float] = Field(None, ge=0)
    valor_cancelado: Optional[float] = Field(None, ge=0)


class AsignacionMultipleItem(BaseModel):
    vehiculo_id: Optional[str] = None
    placa: Optional[str] = None
    conductor_id: Optional[str] = None
    assigned_passengers: int = Field(..., gt=0)


class AsignarVehiculosRequest(BaseModel):
    asignaciones: List[AsignacionMultipleItem] = Field(..., min_length=1)


class FinalizarServicioRequest(BaseModel):
    hora_final: str = Field(..., description="HH:MM")
    fecha_final: Optional[date] = None


class ValoresFinancierosRequest(BaseModel):
    valor_a_facturar: float = Field(..., ge=0)


class CostosRequest(BaseModel):
    valor_cancelado: float = Field(..., ge=0)


class DatosFinancierosUpdate(BaseModel):
    doc_soporte: Optional[str] = None
    fecha_cancelado: Optional[datetime] = None
    n_egreso: Optional[str] = None


class AccountingVehiculoUpdate(BaseModel):
    prefactura: Optional[DocumentoContable] = None
    preliquidacion: Optional[DocumentoContable] = None
    factura: Optional[DocumentoContable] = None
    doc_equivalente: Optional[DocumentoContable] = None
    pagos: Optional[List[PagoVehiculo]] = None
    notas: Optional[str] = None


class SolicitudFilter(BaseModel):
    status: Optional[str] = None
    service_status: Optional[str] = None
    accounting_status: Optional[str] = None
    cliente_id: Optional[str] = None
    he: Optional[str] = None
    fecha_desde: Optional[date] = None
    fecha_hasta: Optional[date] = None


class VehiculoOperacional(BaseModel):
    vehiculo_id: str
    placa: str
    tiene_gastos: bool
    total_gastos: float


class VerificacionOperacionalResponse(BaseModel):
    solicitud_id: str
    completo: bool
    vehiculos: List[VehiculoOperacional]
    faltantes: List[str]


T = TypeVar('T')


class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_prev: bool
