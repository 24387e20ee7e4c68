"""Upstream source readers (internal)."""
