from typing import List, Optional, Dict, Any
from app.modules.notificaciones.model import Notificacion, EventoNotificacion
import logging

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Deja la notificación en la bandeja de salida; el envío real es externo."""

    def __init__(self, db):
        self.db = db
        self.collection = db["notificaciones"]

    def send(self, evento: EventoNotificacion, destinatarios: List[str], payload: Dict[str, Any]) -> None:
        notificacion = Notificacion(
            evento=evento,
            destinatarios=[d for d in destinatarios if d],
            payload=payload
        )
        self.collection.insert_one(notificacion.model_dump())
        logger.info(f"Notificación {notificacion.evento} encolada para {len(notificacion.destinatarios)} destinatarios")


def notificar(
    dispatcher: Optional[NotificationDispatcher],
    evento: EventoNotificacion,
    destinatarios: List[str],
    payload: Dict[str, Any]
) -> None:
    if dispatcher is None:
        return
    try:
        dispatcher.send(evento, destinatarios, payload)
    except Exception as e:
        logger.warning(f"No se pudo notificar {evento}: {str(e)}")
