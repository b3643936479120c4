"""
Scheduling Domain

Recurring schedules, the conflict rules that keep two schedules off the same
weekday/time slot, and the calendar materializer that expands schedules plus
the exception ledger into events for a date range.

Structure:
- recurrence.py   # Recurrence variants and the date-matching predicate
- ledger.py       # Storage-independent view of exception ledger rows
- conflicts.py    # Frequency-pair conflict rules (pure)
- materializer.py # Calendar event projection and display tie-break (pure)
- repository.py   # Schedule queries and ledger reads
- service.py      # ScheduleService (store) and CalendarService (read path)
- router.py       # /schedules and /calendar endpoints

Occurrence transitions that write the ledger live in domain/occurrences.
"""
