"""
Library Loan Reminder.

Turns a photographed library lending slip into stored loan records and
sends Web Push reminders one day before and on each due date.
"""

__all__ = [
    "config",
    "logging",
    "paths",
]
