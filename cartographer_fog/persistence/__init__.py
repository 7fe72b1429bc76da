"""Persistence collaborator interfaces (read-only from the engine's side)."""
