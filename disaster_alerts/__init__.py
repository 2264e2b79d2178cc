"""Top-level package for the Disaster Alerts project.

This package implements a pipeline for ingesting social media posts that may
report natural disasters. Each post is deduplicated, classified by a language
model with layered fallbacks, scored, corroborated against an independent
hazard signal, stored with a time-to-live and, for verified high-severity
events, announced through an alert webhook. Posts arrive either through a
SQLite-backed message queue or through a synchronous HTTP endpoint. See the
README for instructions on running the pipeline.
"""

__all__ = [
    "config",
    "schemas",
    "models",
    "errors",
    "dedup",
    "classification",
    "scoring",
    "corroboration",
    "geocoding",
    "storage",
    "alerts",
    "message_queue",
    "pipeline",
    "queue_coordinator",
    "ingestion",
    "api",
    "data_ingestion",
    "evaluation",
]
