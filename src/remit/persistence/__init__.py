"""Persistence: audit event log and state snapshots."""

from remit.persistence.event_log import EventKind, EventLog, EventRecord
from remit.persistence.state_store import PersistedState, StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "PersistedState", "StateStore"]
