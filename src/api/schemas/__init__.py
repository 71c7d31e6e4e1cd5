"""Pydantic schemas shared by all API endpoints."""
