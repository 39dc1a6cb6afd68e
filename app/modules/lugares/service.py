import re
from typing import Optional
from app.modules.utils.core.code_generator.code_generator import generate_sequential_code
from app.modules.lugares.model import Lugar
import logging

logger = logging.getLogger(__name__)


class LugarService:
    def __init__(self, db):
        self.db = db
        self.collection = db["lugares"]

    def find_by_nombre(self, nombre: str, company_id: str) -> Optional[dict]:
        lugar = self.collection.find_one({
            "company_id": company_id,
            "nombre": {"$regex": f"^{re.escape(nombre.strip())}$", "$options": "i"}
        })
        if lugar:
            lugar["id"] = str(lugar["_id"])
            del lugar["_id"]
        return lugar

    def resolve_lugar(self, nombre: str, company_id: str) -> dict:
        """Busca el lugar por nombre (sin distinguir mayúsculas) o lo registra."""
        try:
            existente = self.find_by_nombre(nombre, company_id)
            if existente:
                return existente

            codigo_lugar = generate_sequential_code(
                counters_collection=self.db["counters"],
                target_collection=self.collection,
                sequence_name=f"lugares:{company_id}",
                field_name="codigo_lugar",
                prefix="LUG-",
                length=10,
                scope={"company_id": company_id}
            )

            lugar_model = Lugar(codigo_lugar=codigo_lugar, nombre=nombre.strip(), company_id=company_id)
            result = self.collection.insert_one(lugar_model.model_dump())

            created = self.collection.find_one({"_id": result.inserted_id})
            created["id"] = str(created["_id"])
            del created["_id"]
            logger.info(f"Lugar registrado: {codigo_lugar} - {created['nombre']}")
            return created

        except Exception as e:
            logger.error(f"Error al resolver lugar: {str(e)}")
            raise
