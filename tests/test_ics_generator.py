"""
Tests for calendar reminder generation
"""
import re
from datetime import date, datetime, timezone

import pytest

from ics_generator import ICSGenerator, display_date, escape_text, format_ics_date

DUE = datetime(2025, 1, 25, tzinfo=timezone.utc)


@pytest.fixture
def generator():
    return ICSGenerator('Asia/Kolkata', location='Central Library', contact='desk@library.example.org')


class TestHelpers:

    def test_format_ics_date(self):
        assert format_ics_date(datetime(2025, 1, 22, 3, 30, tzinfo=timezone.utc)) == '20250122T033000Z'

    def test_escape_text(self):
        assert escape_text('Dune; vol 1, part\\2\nnext') == 'Dune\\; vol 1\\, part\\\\2\\nnext'

    def test_display_date(self):
        assert display_date(date(2025, 1, 5)) == '1/5/2025'

    def test_uid_format(self):
        assert re.fullmatch(r'\d+-[a-z0-9]{9}@library-app\.com', ICSGenerator.generate_uid())


class TestSingleReminder:

    def test_calendar_structure(self, generator):
        filename, content = generator.generate_book_reminder('Dune: Part 1', 'Frank Herbert', DUE)

        assert filename == 'book-reminder-Dune--Part-1.ics'
        lines = content.split('\r\n')
        assert lines[:5] == [
            'BEGIN:VCALENDAR',
            'VERSION:2.0',
            'PRODID:-//Library App//Book Reminder//EN',
            'CALSCALE:GREGORIAN',
            'METHOD:PUBLISH',
        ]
        assert lines[-1] == 'END:VCALENDAR'
        assert lines.count('BEGIN:VEVENT') == 1
        assert 'TRIGGER:-PT60M' in lines
        assert 'LOCATION:Central Library' in lines

    def test_event_three_days_before_at_nine_local(self, generator):
        _, content = generator.generate_book_reminder('Dune', 'Frank Herbert', DUE)

        # 09:00 in Asia/Kolkata is 03:30 UTC
        assert 'DTSTART:20250122T033000Z' in content
        assert 'DTEND:20250122T043000Z' in content
        assert 'SUMMARY:Book Return Reminder: Dune' in content

    def test_description(self, generator):
        _, content = generator.generate_book_reminder('Dune', 'Frank Herbert', DUE)

        description = next(line for line in content.split('\r\n') if line.startswith('DESCRIPTION:Book: '))
        assert description == (
            'DESCRIPTION:Book: Dune\\nAuthor: Frank Herbert\\nDue Date: 1/25/2025\\n\\n'
            'This book is due in 3 days!\\nPlease return it to the library on time to avoid late fees.\\n\\n'
            'Location: Central Library\\nContact: desk@library.example.org'
        )


class TestMultipleReminders:

    def test_three_escalating_events(self, generator):
        filename, content = generator.generate_multiple_reminders('Dune', 'Frank Herbert', DUE)

        assert filename == 'book-reminders-Dune.ics'
        assert 'PRODID:-//Library App//Book Reminders//EN' in content
        assert content.count('BEGIN:VEVENT') == 3
        assert re.findall(r'DTSTART:(\d{8})', content) == ['20250118', '20250122', '20250124']
        assert 'SUMMARY:Book Return Notice: Dune' in content
        assert 'SUMMARY:Book Due Tomorrow: Dune' in content
        assert 'Priority: URGENT' in content
        assert 'This book is due in 1 day!' in content

    def test_naive_due_date_is_local(self, generator):
        start, end = generator.reminder_window(datetime(2025, 3, 10), 1)

        assert start.isoformat() == '2025-03-09T09:00:00+05:30'
        assert (end - start).total_seconds() == 3600
