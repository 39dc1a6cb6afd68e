from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
from datetime import date
from app.core.database import get_database
from app.core.exceptions import ServiceError
from app.modules.auth.schemas.actor import Actor
from app.modules.auth.utils.dependencies import get_current_user
from app.modules.solicitudes.schemas.solicitud_schema import (
    SolicitudClienteCreate, SolicitudCoordinadorCreate, AceptarSolicitudRequest,
    AsignarVehiculosRequest, FinalizarServicioRequest, ValoresFinancierosRequest,
    CostosRequest, DatosFinancierosUpdate, AccountingVehiculoUpdate,
    VerificacionOperacionalResponse, PaginatedResponse
)
from app.modules.solicitudes.services.solicitud_service import SolicitudService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/solicitudes", tags=["Solicitudes"])


@router.post("/cliente")
def crear_solicitud_cliente(
    solicitud: SolicitudClienteCreate,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.create_by_client(current_user, solicitud.model_dump())

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al crear solicitud de cliente: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/")
def crear_solicitud_coordinador(
    solicitud: SolicitudCoordinadorCreate,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.create_by_coordinator(current_user, solicitud.model_dump())

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al crear solicitud: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/", response_model=PaginatedResponse[dict])
def listar_solicitudes(
    page: int = Query(default=1, ge=1, description="Número de página"),
    page_size: int = Query(default=10, ge=1, le=100, description="Elementos por página"),
    status: Optional[str] = Query(None, description="pending, accepted, rejected"),
    service_status: Optional[str] = Query(None, description="sin_asignacion, not-started, started, finished"),
    accounting_status: Optional[str] = Query(None, description="Estado contable"),
    cliente_id: Optional[str] = Query(None, description="Filtrar por cliente"),
    he: Optional[str] = Query(None, description="Filtrar por número HE"),
    fecha_desde: Optional[date] = Query(None, description="Fecha desde"),
    fecha_hasta: Optional[date] = Query(None, description="Fecha hasta"),
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)

        filtros = {
            "status": status,
            "service_status": service_status,
            "accounting_status": accounting_status,
            "cliente_id": cliente_id,
            "he": he,
            "fecha_desde": fecha_desde,
            "fecha_hasta": fecha_hasta
        }
        return solicitud_service.list_solicitudes(current_user, filtros, page, page_size)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al listar solicitudes: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/{solicitud_id}")
def obtener_solicitud(solicitud_id: str, current_user: Actor = Depends(get_current_user)):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.get_solicitud(solicitud_id, current_user)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al obtener solicitud: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/{solicitud_id}/aceptar")
def aceptar_solicitud(
    solicitud_id: str,
    request: AceptarSolicitudRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.accept(solicitud_id, current_user, request.model_dump())

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al aceptar solicitud: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/{solicitud_id}/rechazar")
def rechazar_solicitud(
    solicitud_id: str,
    motivo: Optional[str] = Query(None, description="Motivo del rechazo"),
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.reject(solicitud_id, current_user, motivo)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al rechazar solicitud: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/{solicitud_id}/sugerir-vehiculos")
def sugerir_vehiculos(
    solicitud_id: str,
    seats_preferidos: Optional[int] = Query(None, gt=0, description="Capacidad exacta preferida"),
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.suggest_vehicles(solicitud_id, current_user, seats_preferidos)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al sugerir vehículos: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/{solicitud_id}/asignar-vehiculos")
def asignar_vehiculos(
    solicitud_id: str,
    request: AsignarVehiculosRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        asignaciones = [a.model_dump() for a in request.asignaciones]
        return solicitud_service.assign_multiple_vehicles(solicitud_id, current_user, asignaciones)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al asignar vehículos: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/{solicitud_id}/iniciar")
def iniciar_servicio(solicitud_id: str, current_user: Actor = Depends(get_current_user)):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.start(solicitud_id, current_user)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al iniciar servicio: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/{solicitud_id}/finalizar")
def finalizar_servicio(
    solicitud_id: str,
    request: FinalizarServicioRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.finish(solicitud_id, current_user, request.model_dump())

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al finalizar servicio: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.put("/{solicitud_id}/valor-facturar")
def asignar_valor_facturar(
    solicitud_id: str,
    request: ValoresFinancierosRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.set_financial_values(solicitud_id, current_user, request.valor_a_facturar)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al asignar valor a facturar: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.put("/{solicitud_id}/costos")
def asignar_costos(
    solicitud_id: str,
    request: CostosRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.set_costs(solicitud_id, current_user, request.valor_cancelado)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al asignar costos: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/{solicitud_id}/recalcular")
def recalcular_liquidacion(solicitud_id: str, current_user: Actor = Depends(get_current_user)):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        solicitud_service.get_solicitud(solicitud_id, current_user)
        return solicitud_service.recalcular_liquidacion(solicitud_id)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al recalcular liquidación: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/{solicitud_id}/verificar-operacionales", response_model=VerificacionOperacionalResponse)
def verificar_operacionales(solicitud_id: str, current_user: Actor = Depends(get_current_user)):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.verify_operationals(solicitud_id, current_user.company_id)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al verificar operacionales: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.put("/{solicitud_id}/datos-financieros")
def actualizar_datos_financieros(
    solicitud_id: str,
    request: DatosFinancierosUpdate,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.update_financial_data(
            solicitud_id, current_user, request.model_dump(exclude_unset=True)
        )

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al actualizar datos financieros: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.put("/{solicitud_id}/vehiculos/{vehiculo_id}/contabilidad")
def actualizar_contabilidad_vehiculo(
    solicitud_id: str,
    vehiculo_id: str,
    request: AccountingVehiculoUpdate,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        solicitud_service = SolicitudService(db)
        return solicitud_service.update_assignment_accounting(
            solicitud_id, vehiculo_id, current_user, request.model_dump(exclude_unset=True)
        )

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al actualizar contabilidad del vehículo: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")
