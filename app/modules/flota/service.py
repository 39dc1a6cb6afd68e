from typing import List, Optional
from bson import ObjectId
from app.core.exceptions import ValidationError
from app.modules.flota.model import Vehiculo
import logging

logger = logging.getLogger(__name__)


def _normalizar_placa(placa: str) -> str:
    return placa.replace("-", "").replace(" ", "").upper()


class FlotaService:
    """Directorio de vehículos y conductores de una empresa."""

    def __init__(self, db):
        self.db = db
        self.collection = db["vehiculos"]
        self.users = db["users"]

    def create_vehiculo(self, company_id: str, vehiculo_data: dict) -> dict:
        try:
            vehiculo_data["placa"] = _normalizar_placa(vehiculo_data["placa"])
            vehiculo_data["company_id"] = company_id

            if self.collection.find_one({"placa": vehiculo_data["placa"], "company_id": company_id}):
                raise ValidationError(f"Ya existe un vehículo con placa {vehiculo_data['placa']}")

            vehiculo_model = Vehiculo(**vehiculo_data)
            result = self.collection.insert_one(vehiculo_model.model_dump())

            created = self.collection.find_one({"_id": result.inserted_id})
            created["id"] = str(created["_id"])
            del created["_id"]
            return created

        except ValidationError:
            raise
        except Exception as e:
            logger.error(f"Error al crear vehículo: {str(e)}")
            raise

    def get_vehiculo_by_id(self, vehiculo_id: str) -> Optional[dict]:
        if not vehiculo_id or not ObjectId.is_valid(vehiculo_id):
            return None
        vehiculo = self.collection.find_one({"_id": ObjectId(vehiculo_id)})
        if vehiculo:
            vehiculo["id"] = str(vehiculo["_id"])
            del vehiculo["_id"]
        return vehiculo

    def get_vehiculo_by_placa(self, placa: str, company_id: str) -> Optional[dict]:
        vehiculo = self.collection.find_one({
            "placa": _normalizar_placa(placa),
            "company_id": company_id
        })
        if vehiculo:
            vehiculo["id"] = str(vehiculo["_id"])
            del vehiculo["_id"]
        return vehiculo

    def list_vehiculos(self, company_id: str, tipo: Optional[str] = None, solo_activos: bool = True) -> List[dict]:
        query = {"company_id": company_id}
        if tipo:
            query["tipo"] = tipo
        if solo_activos:
            query["activo"] = True

        vehiculos = []
        for vehiculo in self.collection.find(query).sort("placa", 1):
            vehiculo["id"] = str(vehiculo["_id"])
            del vehiculo["_id"]
            vehiculos.append(vehiculo)
        return vehiculos

    def get_conductor(self, driver_id: str) -> Optional[dict]:
        if not driver_id or not ObjectId.is_valid(driver_id):
            return None
        user = self.users.find_one({"_id": ObjectId(driver_id)})
        if not user:
            return None
        return {
            "id": str(user["_id"]),
            "full_name": user.get("full_name"),
            "telefono": user.get("telefono"),
            "email": user.get("email")
        }
