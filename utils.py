from datetime import datetime
from fastapi import HTTPException
from io import StringIO
import csv


def parse_date(date_str: str) -> datetime:
    """Parse a timestamp string into a naive datetime object.

    Timestamps carrying a UTC offset are rejected; bookings are compared as
    naive local instants.
    """
    try:
        parsed = datetime.fromisoformat(date_str)
    except ValueError:
        try:
            parsed = datetime.strptime(date_str, "%Y-%m-%d %H:%M")
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid date format")
    if parsed.tzinfo is not None:
        raise HTTPException(status_code=400, detail="Invalid date format")
    return parsed


def generate_csv(attendees):
    """Generate a CSV string from a list of attendee users."""
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["ID", "Username", "Name"])
    for a in attendees:
        writer.writerow([a.id, a.username, a.name or ""])
    buffer.seek(0)
    return buffer
