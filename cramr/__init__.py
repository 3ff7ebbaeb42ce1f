"""Cramr study-coordination API."""
