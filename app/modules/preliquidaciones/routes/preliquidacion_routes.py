from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from app.core.database import get_database
from app.core.exceptions import ServiceError
from app.modules.auth.schemas.actor import Actor
from app.modules.auth.utils.dependencies import get_current_user
from app.modules.preliquidaciones.schemas.preliquidacion_schema import (
    GastosPendientesRequest, GenerarPreliquidacionRequest, NotasPreliquidacionRequest, PreliquidacionResponse
)
from app.modules.preliquidaciones.services.preliquidacion_service import PreliquidacionService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/preliquidaciones", tags=["Preliquidaciones"])


@router.post("/generar", response_model=PreliquidacionResponse)
def generar_preliquidacion(
    request: GenerarPreliquidacionRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        preliquidacion_service = PreliquidacionService(db)
        return preliquidacion_service.generate(
            request.solicitudes_ids, request.gastos_operacionales_ids, current_user
        )

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al generar preliquidación: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/gastos-pendientes")
def gastos_pendientes(
    request: GastosPendientesRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        preliquidacion_service = PreliquidacionService(db)
        return preliquidacion_service.get_pending_expenses(request.solicitudes_ids, current_user.company_id)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al obtener gastos pendientes: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/", response_model=List[PreliquidacionResponse])
def listar_preliquidaciones(
    estado: Optional[str] = Query(None, description="pendiente, aprobada o rechazada"),
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        preliquidacion_service = PreliquidacionService(db)
        return preliquidacion_service.list_preliquidaciones(current_user.company_id, estado)

    except Exception as e:
        logger.error(f"Error al listar preliquidaciones: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/{preliquidacion_id}", response_model=PreliquidacionResponse)
def obtener_preliquidacion(preliquidacion_id: str, current_user: Actor = Depends(get_current_user)):
    try:
        db = get_database()
        preliquidacion_service = PreliquidacionService(db)
        return preliquidacion_service.get_preliquidacion(preliquidacion_id, current_user.company_id)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al obtener preliquidación: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/{preliquidacion_id}/aprobar", response_model=PreliquidacionResponse)
def aprobar_preliquidacion(
    preliquidacion_id: str,
    request: NotasPreliquidacionRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        preliquidacion_service = PreliquidacionService(db)
        return preliquidacion_service.approve(preliquidacion_id, current_user, request.notas)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al aprobar preliquidación: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/{preliquidacion_id}/rechazar", response_model=PreliquidacionResponse)
def rechazar_preliquidacion(
    preliquidacion_id: str,
    request: NotasPreliquidacionRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        preliquidacion_service = PreliquidacionService(db)
        return preliquidacion_service.reject(preliquidacion_id, current_user, request.notas)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al rechazar preliquidación: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/{preliquidacion_id}/enviar", response_model=PreliquidacionResponse)
def enviar_preliquidacion(
    preliquidacion_id: str,
    request: NotasPreliquidacionRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        preliquidacion_service = PreliquidacionService(db)
        return preliquidacion_service.send_to_client(preliquidacion_id, current_user, request.notas)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al enviar preliquidación: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")
