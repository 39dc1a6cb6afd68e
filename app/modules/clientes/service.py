from typing import Optional
from bson import ObjectId
from app.modules.clientes.model import Cliente
import logging

logger = logging.getLogger(__name__)


class ClienteService:
    def __init__(self, db):
        self.db = db
        self.collection = db["clientes"]

    def create_cliente(self, company_id: str, cliente_data: dict) -> dict:
        try:
            cliente_model = Cliente(company_id=company_id, **cliente_data)
            result = self.collection.insert_one(cliente_model.model_dump())

            created = self.collection.find_one({"_id": result.inserted_id})
            created["id"] = str(created["_id"])
            del created["_id"]
            return created

        except Exception as e:
            logger.error(f"Error al crear cliente: {str(e)}")
            raise

    def get_cliente_by_id(self, cliente_id: str) -> Optional[dict]:
        if not cliente_id or not ObjectId.is_valid(cliente_id):
            return None
        cliente = self.collection.find_one({"_id": ObjectId(cliente_id)})
        if cliente:
            cliente["id"] = str(cliente["_id"])
            del cliente["_id"]
        return cliente

    def add_contrato(self, cliente_id: str, contrato_id: str) -> None:
        self.collection.update_one(
            {"_id": ObjectId(cliente_id)},
            {"$addToSet": {"contratos": contrato_id}}
        )
