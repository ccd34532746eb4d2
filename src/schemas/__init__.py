"""Pydantic schemas for billing payloads and responses."""
