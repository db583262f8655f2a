"""
ICS Generator
Builds RFC 5545 calendar files reminding a patron to return a borrowed book.
"""

import secrets
import string
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from utils import now_ms, now_utc, safe_filename_part

PRODID_SINGLE = "-//Library App//Book Reminder//EN"
PRODID_MULTIPLE = "-//Library App//Book Reminders//EN"
UID_DOMAIN = "library-app.com"
CRLF = "\r\n"

REMINDER_HOUR = 9
ALARM_MINUTES = 60

# (days before due date, event title, priority)
REMINDER_SCHEDULE = [
    (7, "Book Return Notice", "First Notice"),
    (3, "Book Return Reminder", "Important"),
    (1, "Book Due Tomorrow", "URGENT"),
]

_UID_ALPHABET = string.ascii_lowercase + string.digits


def format_ics_date(dt: datetime) -> str:
    """UTC timestamp in the basic ISO form YYYYMMDDTHHMMSSZ"""
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def escape_text(value: str) -> str:
    return (
        str(value)
        .replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def display_date(value: date) -> str:
    return f"{value.month}/{value.day}/{value.year}"


class ICSGenerator:
    """Calendar reminders in the library's local time zone"""

    def __init__(self, tz_name: str = "UTC", location: str = "University Library",
                 contact: str = "library@university.edu"):
        self.tz = ZoneInfo(tz_name)
        self.location = location
        self.contact = contact

    @staticmethod
    def generate_uid() -> str:
        suffix = "".join(secrets.choice(_UID_ALPHABET) for _ in range(9))
        return f"{now_ms()}-{suffix}@{UID_DOMAIN}"

    def _local_due_date(self, due_date) -> date:
        if isinstance(due_date, datetime):
            if due_date.tzinfo is None:
                due_date = due_date.replace(tzinfo=self.tz)
            return due_date.astimezone(self.tz).date()
        return due_date

    def reminder_window(self, due_date, days_before: int) -> Tuple[datetime, datetime]:
        """09:00-10:00 local time, days_before days ahead of the due date"""
        day = self._local_due_date(due_date) - timedelta(days=days_before)
        start = datetime.combine(day, time(REMINDER_HOUR, 0), tzinfo=self.tz)
        return start, start + timedelta(hours=1)

    def create_vevent(self, title: str, description_lines: List[str], start: datetime, end: datetime,
                      alarm_minutes: int = ALARM_MINUTES, stamp: Optional[datetime] = None) -> List[str]:
        stamp = stamp or now_utc()
        description = "\\n".join(escape_text(line) for line in description_lines)
        summary = escape_text(title)
        return [
            "BEGIN:VEVENT",
            f"UID:{self.generate_uid()}",
            f"DTSTAMP:{format_ics_date(stamp)}",
            f"DTSTART:{format_ics_date(start)}",
            f"DTEND:{format_ics_date(end)}",
            f"SUMMARY:{summary}",
            f"DESCRIPTION:{description}",
            f"LOCATION:{escape_text(self.location)}",
            "STATUS:CONFIRMED",
            "TRANSP:OPAQUE",
            "BEGIN:VALARM",
            "ACTION:DISPLAY",
            f"DESCRIPTION:{summary}",
            f"TRIGGER:-PT{alarm_minutes}M",
            "END:VALARM",
            "END:VEVENT",
        ]

    @staticmethod
    def wrap_calendar(prodid: str, events: List[List[str]]) -> str:
        lines = [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            f"PRODID:{prodid}",
            "CALSCALE:GREGORIAN",
            "METHOD:PUBLISH",
        ]
        for event in events:
            lines.extend(event)
        lines.append("END:VCALENDAR")
        return CRLF.join(lines)

    def _description(self, book_title: str, author: str, due_date, days: int,
                     priority: Optional[str] = None) -> List[str]:
        lines = [
            f"Book: {book_title}",
            f"Author: {author}",
            f"Due Date: {display_date(self._local_due_date(due_date))}",
        ]
        if priority:
            lines.append(f"Priority: {priority}")
        lines += [
            "",
            f"This book is due in {days} day{'' if days == 1 else 's'}!",
            "Please return it to the library on time to avoid late fees.",
            "",
            f"Location: {self.location}",
            f"Contact: {self.contact}",
        ]
        return lines

    def generate_book_reminder(self, book_title: str, author: str, due_date) -> Tuple[str, str]:
        """
        Single reminder three days before the due date.

        Returns:
            (filename, ics content)
        """
        start, end = self.reminder_window(due_date, 3)
        event = self.create_vevent(
            f"Book Return Reminder: {book_title}",
            self._description(book_title, author, due_date, 3),
            start,
            end,
        )
        filename = f"book-reminder-{safe_filename_part(book_title)}.ics"
        return filename, self.wrap_calendar(PRODID_SINGLE, [event])

    def generate_multiple_reminders(self, book_title: str, author: str, due_date) -> Tuple[str, str]:
        """Three escalating reminders at 7, 3 and 1 day(s) before the due date"""
        events = []
        for days, title, priority in REMINDER_SCHEDULE:
            start, end = self.reminder_window(due_date, days)
            events.append(self.create_vevent(
                f"{title}: {book_title}",
                self._description(book_title, author, due_date, days, priority),
                start,
                end,
            ))
        filename = f"book-reminders-{safe_filename_part(book_title)}.ics"
        return filename, self.wrap_calendar(PRODID_MULTIPLE, events)
