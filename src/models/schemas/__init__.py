"""Pydantic models exchanged over the HTTP API and written to export files."""
