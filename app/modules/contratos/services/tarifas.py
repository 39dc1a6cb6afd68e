from typing import Optional
from app.modules.contratos.models.contrato import PricingMode

MODOS_POR_HORA = {PricingMode.POR_HORA.value}
MODOS_POR_KM = {PricingMode.POR_KILOMETRO.value, PricingMode.POR_DISTANCIA.value}
MODOS_TARIFA_PLANA = {
    PricingMode.POR_VIAJE.value,
    PricingMode.POR_TRAYECTO.value,
    PricingMode.TARIFA_AMVA.value,
    PricingMode.FIJO.value,
}


def estimar_precio(modo: str, tarifa: Optional[float], horas: Optional[float] = None,
                   km: Optional[float] = None) -> Optional[float]:
    """None cuando no hay estimación posible."""
    modo = getattr(modo, "value", modo)
    if not tarifa or tarifa <= 0:
        return None

    if modo in MODOS_POR_HORA:
        if not horas or horas <= 0:
            return None
        return round(tarifa * horas, 2)

    if modo in MODOS_POR_KM:
        if not km or km <= 0:
            return None
        return round(tarifa * km, 2)

    if modo in MODOS_TARIFA_PLANA:
        return round(tarifa, 2)

    return None


def estimar_desde_contrato(contrato: dict, modo: Optional[str] = None, horas: Optional[float] = None,
                           km: Optional[float] = None) -> dict:
    cobro = contrato.get("cobro") or {}
    modo = modo or cobro.get("modo_default")
    tarifa = cobro.get(modo) if modo else None

    return {
        "pricing_mode": modo,
        "pricing_rate": tarifa,
        "estimated_price": estimar_precio(modo, tarifa, horas, km) if modo else None
    }
