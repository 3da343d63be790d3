"""Pure functions that render alerts and digests into EmailMessage objects."""

from __future__ import annotations

import datetime
import html
from collections.abc import Callable

from pricewatch.core.types import Alert, AlertType, EmailMessage, StayKey

# ── Helpers ─────────────────────────────────────────────────────


def format_yen(amount: int | None) -> str:
    if amount is None:
        return "-"
    return f"¥{amount:,}"


def _stay_line(key: StayKey) -> str:
    guests = "guest" if key.occupancy == 1 else "guests"
    return (
        f"{key.check_in.isoformat()} → {key.check_out.isoformat()} "
        f"({key.nights} nights, {key.occupancy} {guests})"
    )


def _booking_line(alert: Alert) -> str | None:
    if alert.observation.booking_url:
        return f"Book now: {alert.observation.booking_url}"
    return None


def _to_html(lines: list[str]) -> str:
    return "\n".join(f"<p>{html.escape(line)}</p>" for line in lines if line)


def _message(alert: Alert, subject: str, lines: list[str]) -> EmailMessage:
    booking = _booking_line(alert)
    if booking:
        lines.append(booking)
    return EmailMessage(
        to=alert.user_email,
        subject=subject,
        text="\n".join(lines),
        html=_to_html(lines),
        tags={"alert_type": alert.alert_type.value, "hotel_id": alert.key.hotel_id},
    )


def _greeting(name: str) -> str:
    return f"Hi {name}," if name else "Hi,"


# ── Alert formatters ────────────────────────────────────────────


def format_price_drop(alert: Alert) -> EmailMessage:
    change = alert.change
    lines = [
        _greeting(alert.user_name),
        f"The price for {alert.hotel_name} has dropped.",
        _stay_line(alert.key),
        f"Was: {format_yen(change.previous_price)}",
        f"Now: {format_yen(change.current_price)}",
        f"You save {format_yen(change.price_delta)} ({change.percent_delta}%)",
    ]
    return _message(alert, f"Price drop: {alert.hotel_name}", lines)


def format_target_price(alert: Alert) -> EmailMessage:
    lines = [
        _greeting(alert.user_name),
        f"{alert.hotel_name} is now at or below your target price.",
        _stay_line(alert.key),
        f"Current price: {format_yen(alert.change.current_price)}",
    ]
    return _message(alert, f"Target price reached: {alert.hotel_name}", lines)


def format_new_availability(alert: Alert) -> EmailMessage:
    lines = [
        _greeting(alert.user_name),
        f"Rooms just opened up at {alert.hotel_name}.",
        _stay_line(alert.key),
    ]
    if alert.change.current_price is not None:
        lines.append(f"Price: {format_yen(alert.change.current_price)}")
    return _message(alert, f"Rooms available: {alert.hotel_name}", lines)


def format_last_room(alert: Alert) -> EmailMessage:
    remaining = alert.observation.remaining_rooms
    lines = [
        _greeting(alert.user_name),
        f"Only {remaining} room(s) left at {alert.hotel_name}.",
        _stay_line(alert.key),
    ]
    if alert.change.current_price is not None:
        lines.append(f"Price: {format_yen(alert.change.current_price)}")
    return _message(alert, f"Last rooms: {alert.hotel_name}", lines)


_FORMATTERS: dict[AlertType, Callable[[Alert], EmailMessage]] = {
    AlertType.PRICE_DROP: format_price_drop,
    AlertType.TARGET_PRICE_REACHED: format_target_price,
    AlertType.NEW_AVAILABILITY: format_new_availability,
    AlertType.LAST_ROOM: format_last_room,
}


def format_alert(alert: Alert) -> EmailMessage:
    """Render *alert* with the formatter for its type."""
    return _FORMATTERS[alert.alert_type](alert)


# ── Daily digest ────────────────────────────────────────────────


def _digest_entry(alert: Alert) -> str:
    label = alert.alert_type.value.replace("_", " ")
    price = format_yen(alert.change.current_price)
    entry = f"- {alert.hotel_name} ({alert.key.check_in.isoformat()}): {label}, {price}"
    if alert.alert_type == AlertType.PRICE_DROP and alert.change.price_delta:
        entry += f" (-{format_yen(alert.change.price_delta)})"
    return entry


def format_daily_digest(
    *,
    to: str,
    user_name: str,
    day: datetime.date,
    alerts: list[Alert],
    total_alerts: int,
    total_savings: int,
) -> EmailMessage:
    """Summary of one user's alerts for *day*; *alerts* is already top-N."""
    lines = [
        _greeting(user_name),
        f"Your price watch summary for {day.isoformat()}:",
        f"{total_alerts} alert(s), potential savings {format_yen(total_savings)}",
        "",
        *(_digest_entry(a) for a in alerts),
    ]
    if total_alerts > len(alerts):
        lines.append(f"...and {total_alerts - len(alerts)} more")
    return EmailMessage(
        to=to,
        subject=f"Daily price summary: {day.isoformat()}",
        text="\n".join(lines),
        html=_to_html(lines),
        tags={"alert_type": "daily_digest"},
    )
