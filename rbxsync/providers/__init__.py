"""Remote providers — the boundary between the engine and the live API."""
