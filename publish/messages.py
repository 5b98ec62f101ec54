"""Message templates for rate alerts."""

from __future__ import annotations

from ingestion.models.domain import ExchangeRate

CATEGORY_LABELS = {"official": "Oficial", "parallel": "Paralelo"}


def category_label(rate: ExchangeRate) -> str:
    return CATEGORY_LABELS.get(rate.type, rate.type.capitalize())


def format_price_change(rate: ExchangeRate) -> str:
    rising = rate.change_24h >= 0
    emoji = "📈" if rising else "📉"
    verb = "subió" if rising else "bajó"
    return (
        f"{emoji} Dólar {category_label(rate)} {verb} {abs(rate.change_percentage_24h):.2f}%\n"
        f"💰 Compra: Bs. {rate.buy_price:.3f}\n"
        f"💸 Venta: Bs. {rate.sell_price:.3f}\n"
        f"📊 Promedio: Bs. {rate.average_price:.3f}"
    )


def format_threshold_alert(rate: ExchangeRate, threshold_percent: float) -> str:
    return (
        "🚨 ¡ALERTA DE UMBRAL! 🚨\n"
        f"El dólar {category_label(rate)} ha superado el umbral del {threshold_percent:g}%\n"
        f"📈 Variación: {rate.change_percentage_24h:.2f}%\n"
        f"💰 Compra: Bs. {rate.buy_price:.3f}\n"
        f"💸 Venta: Bs. {rate.sell_price:.3f}"
    )
