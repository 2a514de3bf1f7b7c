"""Pydantic models exchanged between agents."""
