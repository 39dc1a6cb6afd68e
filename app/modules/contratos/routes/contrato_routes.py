from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List
from app.core.database import get_database
from app.core.exceptions import ServiceError
from app.modules.auth.schemas.actor import Actor, ROLES_COMERCIAL, ROLES_INTERNOS
from app.modules.auth.utils.dependencies import require_role
from app.modules.contratos.schemas.contrato_schema import (
    ContratoCreate, ContratoUpdate, ContratoResponse, HistorialContratoResponse,
    EstimarPrecioRequest, EstimarPrecioResponse
)
from app.modules.contratos.services.contrato_service import ContratoService
from app.modules.contratos.services.tarifas import estimar_precio
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contratos", tags=["Contratos"])


@router.post("/", response_model=ContratoResponse)
def crear_contrato(
    contrato: ContratoCreate,
    current_user: Actor = Depends(require_role(ROLES_COMERCIAL))
):
    try:
        db = get_database()
        contrato_service = ContratoService(db)
        return contrato_service.create_contrato(
            current_user.company_id, contrato.model_dump(), usuario=current_user.id
        )

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al crear contrato: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/", response_model=List[ContratoResponse])
def listar_contratos(
    only_active: bool = Query(False, description="Solo contratos activos"),
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    try:
        db = get_database()
        contrato_service = ContratoService(db)
        return contrato_service.list_contratos(current_user.company_id, only_active)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al listar contratos: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/cliente/{client_id}", response_model=List[ContratoResponse])
def listar_contratos_cliente(
    client_id: str,
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    try:
        db = get_database()
        contrato_service = ContratoService(db)
        return contrato_service.list_contratos_by_cliente(client_id, current_user.company_id)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al listar contratos del cliente: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/estimar-precio", response_model=EstimarPrecioResponse)
def estimar_precio_servicio(
    request: EstimarPrecioRequest,
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    return EstimarPrecioResponse(
        modo=request.modo,
        tarifa=request.tarifa,
        estimated_price=estimar_precio(request.modo, request.tarifa, request.horas, request.km)
    )


@router.get("/{contrato_id}", response_model=ContratoResponse)
def obtener_contrato(
    contrato_id: str,
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    try:
        db = get_database()
        contrato_service = ContratoService(db)
        return contrato_service.get_contrato(contrato_id, current_user.company_id)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al obtener contrato: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.put("/{contrato_id}", response_model=ContratoResponse)
def actualizar_contrato(
    contrato_id: str,
    cambios: ContratoUpdate,
    current_user: Actor = Depends(require_role(ROLES_COMERCIAL))
):
    try:
        db = get_database()
        contrato_service = ContratoService(db)
        return contrato_service.update_contrato(
            contrato_id,
            cambios.model_dump(exclude_unset=True),
            company_id=current_user.company_id,
            usuario=current_user.id
        )

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al actualizar contrato: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/{contrato_id}/historial", response_model=List[HistorialContratoResponse])
def obtener_historial_contrato(
    contrato_id: str,
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    try:
        db = get_database()
        contrato_service = ContratoService(db)
        contrato_service.get_contrato(contrato_id, current_user.company_id)
        return contrato_service.get_historial(contrato_id)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al obtener historial del contrato: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")
