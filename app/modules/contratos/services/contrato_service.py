from datetime import datetime
from typing import List, Optional
from bson import ObjectId
from app.core.exceptions import InternalError, NotFoundError, ServiceError, ValidationError
from app.modules.clientes.service import ClienteService
from app.modules.contratos.models.contrato import (
    Contrato, HistorialContrato, TipoContrato, TipoHistorial
)
import logging

logger = logging.getLogger(__name__)

MAX_INTENTOS_CARGO = 5

TIPOS_CON_PRESUPUESTO = {TipoContrato.FIJO.value, TipoContrato.LICITACION.value}


def _serializar(doc: dict) -> dict:
    doc["id"] = str(doc["_id"])
    del doc["_id"]
    return doc


class ContratoService:
    def __init__(self, db, cliente_service: Optional[ClienteService] = None):
        self.db = db
        self.collection = db["contratos"]
        self.historial = db["contrato_historial"]
        self.cliente_service = cliente_service or ClienteService(db)

    def _validar_presupuesto(self, tipo_contrato: str, valor_presupuesto, periodo_presupuesto) -> None:
        if tipo_contrato in TIPOS_CON_PRESUPUESTO:
            if valor_presupuesto is None:
                raise ValidationError("valor_presupuesto es requerido para contratos fijos y licitaciones")
            if not periodo_presupuesto:
                raise ValidationError("periodo_presupuesto es requerido para contratos fijos y licitaciones")
        elif valor_presupuesto is not None:
            raise ValidationError("Los contratos ocasionales no deben tener presupuesto")

    def _registrar_historial(self, entrada: HistorialContrato) -> None:
        self.historial.insert_one(entrada.model_dump())

    def _find(self, contrato_id: str, company_id: Optional[str] = None) -> dict:
        if not contrato_id or not ObjectId.is_valid(contrato_id):
            raise NotFoundError("Contrato no encontrado")

        query = {"_id": ObjectId(contrato_id)}
        if company_id:
            query["company_id"] = company_id

        contrato = self.collection.find_one(query)
        if not contrato:
            raise NotFoundError("Contrato no encontrado")
        return contrato

    def create_contrato(self, company_id: str, contrato_data: dict, usuario: Optional[str] = None) -> dict:
        try:
            cliente = self.cliente_service.get_cliente_by_id(contrato_data.get("client_id"))
            if not cliente:
                raise NotFoundError("Cliente no encontrado")
            if cliente["company_id"] != company_id:
                raise ValidationError("El cliente no pertenece a tu empresa")

            contrato_model = Contrato(company_id=company_id, created_by=usuario, **contrato_data)
            self._validar_presupuesto(
                contrato_model.tipo_contrato,
                contrato_model.valor_presupuesto,
                contrato_model.periodo_presupuesto
            )

            result = self.collection.insert_one(contrato_model.model_dump())
            contrato_id = str(result.inserted_id)

            self._registrar_historial(HistorialContrato(
                contrato_id=contrato_id,
                tipo=TipoHistorial.BUDGET_SET,
                usuario=usuario,
                notas="Creación de contrato",
                prev_valor_presupuesto=None,
                new_valor_presupuesto=contrato_model.valor_presupuesto,
                prev_valor_consumido=0,
                new_valor_consumido=0
            ))
            self.cliente_service.add_contrato(cliente["id"], contrato_id)

            logger.info(f"Contrato creado {contrato_id} para cliente {cliente['id']}")
            return _serializar(self.collection.find_one({"_id": result.inserted_id}))

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al crear contrato: {str(e)}")
            raise InternalError("No se pudo crear el contrato")

    def get_contrato(self, contrato_id: str, company_id: Optional[str] = None) -> dict:
        try:
            return _serializar(self._find(contrato_id, company_id))
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al obtener contrato: {str(e)}")
            raise InternalError("No se pudo obtener el contrato")

    def list_contratos(self, company_id: str, only_active: bool = False) -> List[dict]:
        try:
            query = {"company_id": company_id}
            if only_active:
                query["is_active"] = True
            return [_serializar(c) for c in self.collection.find(query).sort("created", -1)]
        except Exception as e:
            logger.error(f"Error al listar contratos: {str(e)}")
            raise InternalError("No se pudieron listar los contratos")

    def list_contratos_by_cliente(self, client_id: str, company_id: Optional[str] = None) -> List[dict]:
        try:
            query = {"client_id": client_id}
            if company_id:
                query["company_id"] = company_id
            return [_serializar(c) for c in self.collection.find(query).sort("created", -1)]
        except Exception as e:
            logger.error(f"Error al listar contratos del cliente: {str(e)}")
            raise InternalError("No se pudieron listar los contratos")

    def get_historial(self, contrato_id: str) -> List[dict]:
        return [
            _serializar(h)
            for h in self.historial.find({"contrato_id": contrato_id}).sort([("fecha", 1), ("_id", 1)])
        ]

    def update_contrato(
        self,
        contrato_id: str,
        cambios: dict,
        company_id: Optional[str] = None,
        usuario: Optional[str] = None
    ) -> dict:
        try:
            contrato = self._find(contrato_id, company_id)
            cambios = {k: v for k, v in cambios.items() if v is not None}
            notas = cambios.pop("notas", None)

            prev_presupuesto = contrato.get("valor_presupuesto")
            consumido = contrato.get("valor_consumido", 0)

            tipo = cambios.get("tipo_contrato", contrato.get("tipo_contrato"))
            presupuesto = cambios.get("valor_presupuesto", prev_presupuesto)
            periodo = cambios.get("periodo_presupuesto", contrato.get("periodo_presupuesto"))

            # Un contrato que pasa a ocasional deja de tener tope
            pasa_a_ocasional = (
                cambios.get("tipo_contrato") == TipoContrato.OCASIONAL.value
                and contrato.get("tipo_contrato") != TipoContrato.OCASIONAL.value
            )
            if pasa_a_ocasional and "valor_presupuesto" not in cambios:
                presupuesto = None
                cambios["valor_presupuesto"] = None
                cambios["periodo_presupuesto"] = None
                periodo = None

            self._validar_presupuesto(tipo, presupuesto, periodo)
            if presupuesto is not None and presupuesto < consumido:
                raise ValidationError(
                    f"El valor_presupuesto ({presupuesto}) no puede ser menor al valor consumido ({consumido})"
                )

            if not cambios:
                return _serializar(contrato)

            cambios["updated_at"] = datetime.now()
            result = self.collection.update_one(
                {"_id": contrato["_id"], "version": contrato.get("version", 0)},
                {"$set": cambios, "$inc": {"version": 1}}
            )
            if result.modified_count == 0:
                raise ValidationError("El contrato fue modificado por otra operación, intente nuevamente")

            afecta_presupuesto = any(
                k in cambios for k in ("valor_presupuesto", "periodo_presupuesto", "tipo_contrato")
            )
            if afecta_presupuesto:
                self._registrar_historial(HistorialContrato(
                    contrato_id=contrato_id,
                    tipo=TipoHistorial.BUDGET_SET,
                    usuario=usuario,
                    notas=notas or "Actualización de contrato",
                    prev_valor_presupuesto=prev_presupuesto,
                    new_valor_presupuesto=presupuesto,
                    prev_valor_consumido=consumido,
                    new_valor_consumido=consumido
                ))

            return _serializar(self.collection.find_one({"_id": contrato["_id"]}))

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al actualizar contrato: {str(e)}")
            raise InternalError("No se pudo actualizar el contrato")

    def cargar_contrato(
        self,
        contrato_id: str,
        monto: float,
        solicitud_id: Optional[str] = None,
        usuario: Optional[str] = None,
        notas: Optional[str] = None,
        company_id: Optional[str] = None
    ) -> dict:
        """
        Descuenta ``monto`` del presupuesto del contrato.

        El descuento se aplica con compare-and-set sobre el consumido, el
        presupuesto y la versión leídos; si otra operación gana la carrera se
        relee el contrato y se vuelve a evaluar el tope.
        """
        try:
            if monto is None or monto <= 0:
                raise ValidationError("El monto debe ser mayor a 0")

            for intento in range(1, MAX_INTENTOS_CARGO + 1):
                contrato = self._find(contrato_id, company_id)
                if not contrato.get("is_active", False):
                    raise ValidationError("El contrato está inactivo")

                presupuesto = contrato.get("valor_presupuesto")
                prev_consumido = contrato.get("valor_consumido", 0)
                nuevo_consumido = round(prev_consumido + monto, 2)

                if presupuesto is not None and nuevo_consumido > presupuesto:
                    raise ValidationError("El cargo excede el valor_presupuesto del contrato")

                result = self.collection.update_one(
                    {
                        "_id": contrato["_id"],
                        "is_active": True,
                        "version": contrato.get("version", 0),
                        "valor_consumido": prev_consumido,
                        "valor_presupuesto": presupuesto
                    },
                    {
                        "$set": {"valor_consumido": nuevo_consumido, "updated_at": datetime.now()},
                        "$inc": {"version": 1}
                    }
                )

                if result.modified_count == 1:
                    self._registrar_historial(HistorialContrato(
                        contrato_id=contrato_id,
                        tipo=TipoHistorial.SERVICE_CHARGE,
                        usuario=usuario,
                        notas=notas or "Cargo por servicio",
                        prev_valor_presupuesto=presupuesto,
                        new_valor_presupuesto=presupuesto,
                        prev_valor_consumido=prev_consumido,
                        new_valor_consumido=nuevo_consumido,
                        solicitud_id=solicitud_id,
                        monto=monto,
                        modo="within_contract"
                    ))
                    logger.info(f"Contrato {contrato_id}: cargo de {monto}, consumido {nuevo_consumido}")
                    return _serializar(self.collection.find_one({"_id": contrato["_id"]}))

                logger.warning(f"Contrato {contrato_id} modificado durante el cargo (intento {intento})")

            raise ValidationError("No se pudo registrar el cargo por operaciones concurrentes, intente nuevamente")

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al descontar del contrato: {str(e)}")
            raise InternalError("No se pudo descontar del contrato")

    def revertir_cargo(
        self,
        contrato_id: str,
        monto: float,
        solicitud_id: Optional[str] = None,
        usuario: Optional[str] = None,
        notas: Optional[str] = None
    ) -> dict:
        """Ajuste compensatorio de un cargo ya registrado."""
        try:
            for intento in range(1, MAX_INTENTOS_CARGO + 1):
                contrato = self._find(contrato_id)
                presupuesto = contrato.get("valor_presupuesto")
                prev_consumido = contrato.get("valor_consumido", 0)
                nuevo_consumido = round(max(0, prev_consumido - monto), 2)

                result = self.collection.update_one(
                    {
                        "_id": contrato["_id"],
                        "version": contrato.get("version", 0),
                        "valor_consumido": prev_consumido
                    },
                    {
                        "$set": {"valor_consumido": nuevo_consumido, "updated_at": datetime.now()},
                        "$inc": {"version": 1}
                    }
                )

                if result.modified_count == 1:
                    self._registrar_historial(HistorialContrato(
                        contrato_id=contrato_id,
                        tipo=TipoHistorial.MANUAL_ADJUST,
                        usuario=usuario,
                        notas=notas or "Reversión de cargo",
                        prev_valor_presupuesto=presupuesto,
                        new_valor_presupuesto=presupuesto,
                        prev_valor_consumido=prev_consumido,
                        new_valor_consumido=nuevo_consumido,
                        solicitud_id=solicitud_id,
                        monto=-monto
                    ))
                    return _serializar(self.collection.find_one({"_id": contrato["_id"]}))

                logger.warning(f"Contrato {contrato_id} modificado durante la reversión (intento {intento})")

            raise ValidationError("No se pudo revertir el cargo por operaciones concurrentes")

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al revertir cargo del contrato: {str(e)}")
            raise InternalError("No se pudo revertir el cargo del contrato")
