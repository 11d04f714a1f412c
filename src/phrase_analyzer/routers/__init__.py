"""HTTP routers (thin adapters over the workflow and the phrase store)."""

from . import analyze, config, health, phrases

__all__ = ["analyze", "config", "health", "phrases"]
