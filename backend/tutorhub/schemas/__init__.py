"""Pydantic request/response schemas for the public API."""
