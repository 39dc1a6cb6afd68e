from datetime import datetime
from typing import Dict, List, Optional
from bson import ObjectId
from app.core.exceptions import (
    ForbiddenError, InternalError, NotFoundError, ServiceError, ValidationError
)
from app.modules.auth.schemas.actor import Actor, ROLES_CONTABILIDAD
from app.modules.flota.model import FlotaEnum
from app.modules.flota.service import FlotaService
from app.modules.gastos.model import EstadoGasto
from app.modules.notificaciones.model import EventoNotificacion
from app.modules.notificaciones.service import NotificationDispatcher, notificar
from app.modules.prefacturas.services.prefactura_service import build_numero
from app.modules.preliquidaciones.models.preliquidacion import (
    EnvioPreliquidacion, EstadoPreliquidacion, Preliquidacion
)
from app.modules.solicitudes.models.solicitud import AccountingStatus
import logging

logger = logging.getLogger(__name__)


def _serializar(doc: dict) -> dict:
    doc["id"] = str(doc["_id"])
    del doc["_id"]
    return doc


def _object_ids(ids: List[str]) -> List[ObjectId]:
    return [ObjectId(i) for i in ids if ObjectId.is_valid(i)]


def _valor_gasto(gasto: dict) -> float:
    return sum(d.get("valor", 0) for d in gasto.get("detalles_gastos", []))


def _clave_propietario(propietario: dict) -> Optional[str]:
    return propietario.get("company_id") or propietario.get("user_id") or propietario.get("nombre")


def _vehiculos_de(solicitud: dict) -> List[str]:
    vehiculos = [a.get("vehiculo_id") for a in solicitud.get("vehicle_assignments") or []]
    if solicitud.get("vehiculo_id"):
        vehiculos.append(solicitud["vehiculo_id"])
    return list(dict.fromkeys(v for v in vehiculos if v))


class PreliquidacionService:
    def __init__(
        self,
        db,
        flota_service: Optional[FlotaService] = None,
        dispatcher: Optional[NotificationDispatcher] = None
    ):
        self.db = db
        self.collection = db["preliquidaciones"]
        self.solicitudes = db["solicitudes"]
        self.gastos = db["gastos_operacionales"]
        self.flota_service = flota_service or FlotaService(db)
        self.dispatcher = dispatcher or NotificationDispatcher(db)

    def _requiere_contabilidad(self, actor: Actor) -> None:
        if actor.role not in ROLES_CONTABILIDAD:
            raise ForbiddenError("No tienes permisos para gestionar preliquidaciones")

    def _find(self, preliquidacion_id: str, company_id: Optional[str] = None) -> dict:
        if not preliquidacion_id or not ObjectId.is_valid(preliquidacion_id):
            raise NotFoundError("Preliquidación no encontrada")

        query = {"_id": ObjectId(preliquidacion_id)}
        if company_id:
            query["company_id"] = company_id

        preliquidacion = self.collection.find_one(query)
        if not preliquidacion:
            raise NotFoundError("Preliquidación no encontrada")
        return preliquidacion

    def _pendiente(self, preliquidacion: dict) -> None:
        if preliquidacion["estado"] != EstadoPreliquidacion.PENDIENTE.value:
            raise ValidationError(f"La preliquidación ya está {preliquidacion['estado']}")

    def _cargar_solicitudes(self, solicitudes_ids: List[str], company_id: str) -> List[dict]:
        solicitudes = list(self.solicitudes.find({
            "_id": {"$in": _object_ids(solicitudes_ids)},
            "company_id": company_id
        }))

        encontradas = {str(s["_id"]) for s in solicitudes}
        faltantes = [sid for sid in solicitudes_ids if sid not in encontradas]
        if faltantes:
            raise NotFoundError(f"Las siguientes solicitudes no fueron encontradas: {', '.join(faltantes)}")

        # Conserva el orden pedido
        por_id = {str(s["_id"]): s for s in solicitudes}
        return [por_id[sid] for sid in solicitudes_ids]

    def _validar_solicitudes(self, solicitudes: List[dict]) -> None:
        no_facturadas = [
            s.get("he") or str(s["_id"]) for s in solicitudes
            if s.get("accounting_status") != AccountingStatus.FACTURADO.value
        ]
        if no_facturadas:
            raise ValidationError(f"Las siguientes solicitudes no están facturadas: {', '.join(no_facturadas)}")

        if len({s.get("cliente_id") for s in solicitudes}) > 1:
            raise ValidationError("Todas las solicitudes deben pertenecer al mismo cliente")

        if not solicitudes[0].get("cliente_id"):
            raise ValidationError("Las solicitudes no tienen cliente asociado")

        con_preliquidacion = [s.get("he") or str(s["_id"]) for s in solicitudes if s.get("preliquidacion_id")]
        if con_preliquidacion:
            raise ValidationError(
                f"Las siguientes solicitudes ya tienen preliquidación: {', '.join(con_preliquidacion)}"
            )

    def _propietario_comun(self, vehiculos_ids: List[str]) -> dict:
        """Solo se preliquidan vehículos afiliados o externos de un único propietario."""
        vehiculos = [self.flota_service.get_vehiculo_by_id(v) for v in vehiculos_ids]
        vehiculos = [v for v in vehiculos if v]
        if not vehiculos:
            raise ValidationError("No se encontraron vehículos en las solicitudes")

        propios = [v["placa"] for v in vehiculos if v.get("flota") == FlotaEnum.PROPIO.value]
        if propios:
            raise ValidationError(
                f"No se puede generar preliquidación para vehículos propios: {', '.join(propios)}"
            )

        propietarios: Dict[str, dict] = {}
        for vehiculo in vehiculos:
            propietario = vehiculo.get("owner") or {}
            clave = _clave_propietario(propietario)
            if not clave:
                raise ValidationError(f"El vehículo {vehiculo['placa']} no tiene propietario asignado")
            propietarios[clave] = propietario

        if len(propietarios) > 1:
            raise ValidationError(
                "Todos los vehículos deben pertenecer al mismo propietario para generar una preliquidación"
            )

        return next(iter(propietarios.values()))

    def _cargar_gastos(self, gastos_ids: List[str], vehiculos_ids: List[str], company_id: str) -> List[dict]:
        if not gastos_ids:
            return []

        gastos = list(self.gastos.find({
            "_id": {"$in": _object_ids(gastos_ids)},
            "company_id": company_id,
            "estado": EstadoGasto.NO_LIQUIDADO.value,
            "preliquidacion_id": None
        }))

        encontrados = {str(g["_id"]) for g in gastos}
        faltantes = [gid for gid in gastos_ids if gid not in encontrados]
        if faltantes:
            raise NotFoundError(
                f"Los siguientes gastos operacionales no fueron encontrados o ya están liquidados: "
                f"{', '.join(faltantes)}"
            )

        ajenos = [g.get("placa") or g["vehiculo_id"] for g in gastos if g["vehiculo_id"] not in vehiculos_ids]
        if ajenos:
            raise ValidationError(
                f"Los gastos de los vehículos {', '.join(ajenos)} no corresponden a las solicitudes"
            )

        return gastos

    def generate(self, solicitudes_ids: List[str], gastos_ids: List[str], actor: Actor) -> dict:
        """
        Genera una preliquidación para solicitudes facturadas de un mismo
        cliente. Los gastos incluidos quedan reservados hasta que se apruebe
        o rechace.
        """
        try:
            self._requiere_contabilidad(actor)

            solicitudes_ids = list(dict.fromkeys(solicitudes_ids or []))
            gastos_ids = list(dict.fromkeys(gastos_ids or []))
            if not solicitudes_ids:
                raise ValidationError("Debe proporcionar al menos una solicitud")

            solicitudes = self._cargar_solicitudes(solicitudes_ids, actor.company_id)
            self._validar_solicitudes(solicitudes)

            vehiculos_ids = list(dict.fromkeys(v for s in solicitudes for v in _vehiculos_de(s)))
            propietario = self._propietario_comun(vehiculos_ids)
            gastos = self._cargar_gastos(gastos_ids, vehiculos_ids, actor.company_id)

            total_solicitudes = round(sum(float(s.get("valor_a_facturar") or 0) for s in solicitudes), 2)
            total_gastos = round(sum(_valor_gasto(g) for g in gastos), 2)

            preliquidacion = Preliquidacion(
                company_id=actor.company_id,
                numero=build_numero(
                    [s.get("he") or str(s["_id"]) for s in solicitudes],
                    solicitudes[0].get("cliente_nombre"),
                    prefijo="PRELIQ"
                ),
                cliente_id=solicitudes[0].get("cliente_id"),
                cliente_nombre=solicitudes[0].get("cliente_nombre"),
                propietario=propietario,
                solicitudes_ids=solicitudes_ids,
                gastos_operacionales_ids=gastos_ids,
                total_solicitudes=total_solicitudes,
                total_gastos_operacionales=total_gastos,
                total_preliquidacion=round(total_solicitudes - total_gastos, 2),
                created_by=actor.id
            )

            result = self.collection.insert_one(preliquidacion.model_dump())
            preliquidacion_id = str(result.inserted_id)

            self.solicitudes.update_many(
                {"_id": {"$in": _object_ids(solicitudes_ids)}},
                {"$set": {
                    "preliquidacion_id": preliquidacion_id,
                    "preliquidacion_numero": preliquidacion.numero,
                    "last_modified_by": actor.id
                }}
            )
            if gastos_ids:
                self.gastos.update_many(
                    {"_id": {"$in": _object_ids(gastos_ids)}},
                    {"$set": {"preliquidacion_id": preliquidacion_id}}
                )

            logger.info(f"Preliquidación {preliquidacion.numero} generada para {len(solicitudes_ids)} solicitudes")
            return _serializar(self.collection.find_one({"_id": result.inserted_id}))

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al generar preliquidación: {str(e)}")
            raise InternalError("No se pudo generar la preliquidación")

    def approve(self, preliquidacion_id: str, actor: Actor, notas: Optional[str] = None) -> dict:
        try:
            self._requiere_contabilidad(actor)
            preliquidacion = self._find(preliquidacion_id, actor.company_id)
            self._pendiente(preliquidacion)

            self.collection.update_one({"_id": preliquidacion["_id"]}, {"$set": {
                "estado": EstadoPreliquidacion.APROBADA.value,
                "aprobada_por": actor.id,
                "aprobada_fecha": datetime.now(),
                "notas": notas,
                "last_modified_by": actor.id
            }})

            if preliquidacion["gastos_operacionales_ids"]:
                self.gastos.update_many(
                    {"_id": {"$in": _object_ids(preliquidacion["gastos_operacionales_ids"])}},
                    {"$set": {"estado": EstadoGasto.LIQUIDADO.value}}
                )

            logger.info(f"Preliquidación {preliquidacion['numero']} aprobada")
            return _serializar(self.collection.find_one({"_id": preliquidacion["_id"]}))

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al aprobar preliquidación: {str(e)}")
            raise InternalError("No se pudo aprobar la preliquidación")

    def reject(self, preliquidacion_id: str, actor: Actor, notas: Optional[str] = None) -> dict:
        """Libera los gastos y devuelve las solicitudes a facturado para volver a preliquidarlas."""
        try:
            self._requiere_contabilidad(actor)
            preliquidacion = self._find(preliquidacion_id, actor.company_id)
            self._pendiente(preliquidacion)

            self.collection.update_one({"_id": preliquidacion["_id"]}, {"$set": {
                "estado": EstadoPreliquidacion.RECHAZADA.value,
                "rechazada_por": actor.id,
                "rechazada_fecha": datetime.now(),
                "notas": notas,
                "last_modified_by": actor.id
            }})

            if preliquidacion["gastos_operacionales_ids"]:
                self.gastos.update_many(
                    {"_id": {"$in": _object_ids(preliquidacion["gastos_operacionales_ids"])}},
                    {
                        "$set": {"estado": EstadoGasto.NO_LIQUIDADO.value},
                        "$unset": {"preliquidacion_id": ""}
                    }
                )

            self.solicitudes.update_many(
                {"_id": {"$in": _object_ids(preliquidacion["solicitudes_ids"])}},
                {
                    "$set": {
                        "accounting_status": AccountingStatus.FACTURADO.value,
                        "last_modified_by": actor.id
                    },
                    "$unset": {"preliquidacion_id": "", "preliquidacion_numero": ""}
                }
            )

            logger.info(f"Preliquidación {preliquidacion['numero']} rechazada")
            return _serializar(self.collection.find_one({"_id": preliquidacion["_id"]}))

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al rechazar preliquidación: {str(e)}")
            raise InternalError("No se pudo rechazar la preliquidación")

    def send_to_client(self, preliquidacion_id: str, actor: Actor, notas: Optional[str] = None) -> dict:
        try:
            self._requiere_contabilidad(actor)
            preliquidacion = self._find(preliquidacion_id, actor.company_id)

            if preliquidacion["estado"] != EstadoPreliquidacion.APROBADA.value:
                raise ValidationError("Solo se pueden enviar preliquidaciones aprobadas al propietario del vehículo")

            propietario = preliquidacion.get("propietario") or {}
            if not propietario.get("email"):
                raise ValidationError("El propietario del vehículo no tiene información de contacto configurada")

            envio = EnvioPreliquidacion(estado=EstadoPreliquidacion.APROBADA, enviado_por=actor.id, notas=notas)
            self.collection.update_one({"_id": preliquidacion["_id"]}, {
                "$set": {
                    "enviada_al_cliente": True,
                    "fecha_envio_cliente": envio.fecha,
                    "enviada_por": actor.id,
                    "last_modified_by": actor.id
                },
                "$push": {"historial_envios": envio.model_dump()}
            })

            notificar(
                self.dispatcher,
                EventoNotificacion.PRELIQUIDACION_ENVIADA,
                [propietario["email"]],
                {"preliquidacion_id": preliquidacion_id, "numero": preliquidacion["numero"], "notas": notas}
            )

            return _serializar(self.collection.find_one({"_id": preliquidacion["_id"]}))

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Error al enviar preliquidación: {str(e)}")
            raise InternalError("No se pudo enviar la preliquidación")

    def get_pending_expenses(self, solicitudes_ids: List[str], company_id: str) -> dict:
        """Gastos sin liquidar ni reservar de los vehículos que atendieron las solicitudes."""
        try:
            if not solicitudes_ids:
                return {"gastos_operacionales": []}

            solicitudes = self.solicitudes.find({
                "_id": {"$in": _object_ids(solicitudes_ids)},
                "company_id": company_id
            })
            vehiculos_ids = list(dict.fromkeys(v for s in solicitudes for v in _vehiculos_de(s)))
            if not vehiculos_ids:
                return {"gastos_operacionales": []}

            gastos = self.gastos.find({
                "company_id": company_id,
                "vehiculo_id": {"$in": vehiculos_ids},
                "estado": EstadoGasto.NO_LIQUIDADO.value,
                "preliquidacion_id": None
            }).sort("fecha_gasto", 1)

            return {"gastos_operacionales": [_serializar(g) for g in gastos]}

        except Exception as e:
            logger.error(f"Error al obtener gastos pendientes: {str(e)}")
            raise InternalError("No se pudieron obtener los gastos pendientes")

    def get_preliquidacion(self, preliquidacion_id: str, company_id: Optional[str] = None) -> dict:
        return _serializar(self._find(preliquidacion_id, company_id))

    def list_preliquidaciones(self, company_id: str, estado: Optional[str] = None) -> List[dict]:
        query = {"company_id": company_id}
        if estado:
            query["estado"] = estado
        return [_serializar(p) for p in self.collection.find(query).sort("fecha", -1)]
