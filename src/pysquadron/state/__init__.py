"""Persistent state layer.

The event log is the single source of truth for session history; the
snapshot store holds the latest capture.  Session aggregates are rebuilt
from the log, never stored.
"""
