"""Pydantic models for the OpenAI-facing API and the upstream wire format."""
