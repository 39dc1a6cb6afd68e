from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from app.core.database import get_database
from app.core.exceptions import ServiceError
from app.modules.auth.schemas.actor import Actor, ROLES_COORDINACION
from app.modules.auth.utils.dependencies import get_current_user, require_role
from app.modules.flota.service import FlotaService
from app.modules.flota.schema import VehiculoCreate, VehiculoResponse
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flota", tags=["Flota"])


@router.post("/vehiculos", response_model=VehiculoResponse)
def crear_vehiculo(
    vehiculo: VehiculoCreate,
    current_user: Actor = Depends(require_role(ROLES_COORDINACION))
):
    try:
        db = get_database()
        flota_service = FlotaService(db)
        return flota_service.create_vehiculo(current_user.company_id, vehiculo.model_dump())

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al crear vehículo: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/vehiculos", response_model=List[VehiculoResponse])
def listar_vehiculos(
    tipo: Optional[str] = Query(None, description="Filtrar por tipo de vehículo"),
    current_user: Actor = Depends(get_current_user)
):
    try:
        db = get_database()
        flota_service = FlotaService(db)
        return flota_service.list_vehiculos(current_user.company_id, tipo)

    except Exception as e:
        logger.error(f"Error al listar vehículos: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/vehiculos/{vehiculo_id}", response_model=VehiculoResponse)
def obtener_vehiculo(vehiculo_id: str, current_user: Actor = Depends(get_current_user)):
    try:
        db = get_database()
        flota_service = FlotaService(db)

        vehiculo = flota_service.get_vehiculo_by_id(vehiculo_id)
        if not vehiculo or vehiculo["company_id"] != current_user.company_id:
            raise HTTPException(status_code=404, detail="Vehículo no encontrado")

        return vehiculo

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error al obtener vehículo: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")
