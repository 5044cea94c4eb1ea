"""Event-choreographed blog services: event bus, projections and moderation."""

__version__ = "0.1.0"
