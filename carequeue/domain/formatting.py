import datetime as dt

from carequeue.domain.models import Booking


def time_to_12h(time: dt.time) -> str:
    """Convert ``time(14, 30)`` → ``2:30 PM``.

    No leading zero on the hour (``3:30 PM`` not ``03:30 PM``).
    """
    hour = time.hour % 12 or 12
    period = "AM" if time.hour < 12 else "PM"
    return f"{hour}:{time.strftime('%M')} {period}"


def date_to_us_long(date: dt.date) -> str:
    """Convert ``date(2026, 3, 22)`` → ``March 22, 2026``."""
    return f"{date.strftime('%B')} {date.day}, {date.year}"


def format_appointment_type(booking: Booking) -> str:
    """``Adhoc`` for walk-in bookings, otherwise ``Booked 9:00 AM``."""
    if booking.is_adhoc:
        return "Adhoc"
    return f"Booked {time_to_12h(booking.appointment_time)}"
