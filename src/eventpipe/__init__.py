"""Event-driven side-effect pipeline: bus, relay, jobs and bulk iteration."""

__version__ = "0.1.0"
