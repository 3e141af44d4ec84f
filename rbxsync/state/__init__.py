"""Persistence of the desired-state document and the checkpoint."""
