"""Org Nexus HTTP backend (FastAPI) and its Postgres repository."""
