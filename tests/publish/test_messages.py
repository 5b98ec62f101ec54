from ingestion.models.domain import ExchangeRate
from publish.messages import category_label, format_price_change, format_threshold_alert


def _rate(rate_type="parallel", change=0.5, pct=4.5454) -> ExchangeRate:
    return ExchangeRate(
        type=rate_type,
        base_currency="USD",
        target_currency="BOB",
        buy_price=11.0,
        sell_price=12.0,
        change_24h=change,
        change_percentage_24h=pct,
    )


def test_rising_price_message():
    assert format_price_change(_rate()) == (
        "📈 Dólar Paralelo subió 4.55%\n"
        "💰 Compra: Bs. 11.000\n"
        "💸 Venta: Bs. 12.000\n"
        "📊 Promedio: Bs. 11.500"
    )


def test_falling_price_message_shows_absolute_change():
    message = format_price_change(_rate("official", change=-0.2, pct=-1.25))

    assert message.startswith("📉 Dólar Oficial bajó 1.25%")


def test_unchanged_price_reads_as_rise():
    assert format_price_change(_rate(change=0.0, pct=0.0)).startswith("📈 Dólar Paralelo subió 0.00%")


def test_threshold_alert_message():
    assert format_threshold_alert(_rate(pct=-6.0), 5.0) == (
        "🚨 ¡ALERTA DE UMBRAL! 🚨\n"
        "El dólar Paralelo ha superado el umbral del 5%\n"
        "📈 Variación: -6.00%\n"
        "💰 Compra: Bs. 11.000\n"
        "💸 Venta: Bs. 12.000"
    )


def test_category_label():
    assert category_label(_rate("official")) == "Oficial"
    assert category_label(_rate("parallel")) == "Paralelo"
