"""Calimbus: a Kanban board over Google Calendar events and Google Tasks."""

__version__ = "0.1.0"
