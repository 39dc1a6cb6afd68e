from fastapi import APIRouter, Depends, HTTPException
from typing import List
from app.core.database import get_database
from app.core.exceptions import ServiceError
from app.modules.auth.schemas.actor import Actor
from app.modules.auth.utils.dependencies import get_current_user
from app.modules.prefacturas.schemas.prefactura_schema import (
    GenerarMultipleRequest, AprobarPrefacturaRequest, NotasRequest, HistorialPrefacturaResponse
)
from app.modules.prefacturas.services.prefactura_service import PrefacturaService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prefacturas", tags=["Prefacturas"])


@router.post("/solicitud/{solicitud_id}/generar")
def generar_prefactura(solicitud_id: str, current_user: Actor = Depends(get_current_user)):
    try:
        db = get_database()
        prefactura_service = PrefacturaService(db)
        return prefactura_service.generate(solicitud_id, current_user)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al generar prefactura: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/generar-multiple")
def generar_prefactura_multiple(
    request: GenerarMultipleRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        prefactura_service = PrefacturaService(db)
        return prefactura_service.generate_multiple(request.solicitud_ids, current_user)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al generar prefactura múltiple: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/solicitud/{solicitud_id}/aprobar")
def aprobar_prefactura(
    solicitud_id: str,
    request: AprobarPrefacturaRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        prefactura_service = PrefacturaService(db)
        return prefactura_service.approve(solicitud_id, current_user, request.reenviar, request.notas)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al aprobar prefactura: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/solicitud/{solicitud_id}/rechazar")
def rechazar_prefactura(
    solicitud_id: str,
    request: NotasRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        prefactura_service = PrefacturaService(db)
        return prefactura_service.reject(solicitud_id, current_user, request.notas)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al rechazar prefactura: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/solicitud/{solicitud_id}/enviar")
def enviar_prefactura(
    solicitud_id: str,
    request: NotasRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        prefactura_service = PrefacturaService(db)
        return prefactura_service.send_to_client(solicitud_id, current_user, request.notas)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al enviar prefactura: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/solicitud/{solicitud_id}/cliente/aprobar")
def aprobar_prefactura_cliente(
    solicitud_id: str,
    request: NotasRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        prefactura_service = PrefacturaService(db)
        return prefactura_service.client_approve(solicitud_id, current_user, request.notas)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al aprobar prefactura por cliente: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.post("/solicitud/{solicitud_id}/cliente/rechazar")
def rechazar_prefactura_cliente(
    solicitud_id: str,
    request: NotasRequest,
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        prefactura_service = PrefacturaService(db)
        return prefactura_service.client_reject(solicitud_id, current_user, request.notas)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al rechazar prefactura por cliente: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/solicitud/{solicitud_id}/historial", response_model=List[HistorialPrefacturaResponse])
def historial_prefactura(solicitud_id: str, current_user: Actor = Depends(get_current_user)):
    try:
        db = get_database()
        prefactura_service = PrefacturaService(db)
        prefactura_service._find(solicitud_id, current_user.company_id)
        return prefactura_service.get_historial(solicitud_id)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al obtener historial de prefactura: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/solicitud/{solicitud_id}/envios", response_model=List[HistorialPrefacturaResponse])
def historial_envios(solicitud_id: str, current_user: Actor = Depends(get_current_user)):
    try:
        db = get_database()
        prefactura_service = PrefacturaService(db)
        prefactura_service._find(solicitud_id, current_user.company_id)
        return prefactura_service.get_historial_envios(solicitud_id)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al obtener historial de envíos: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")
