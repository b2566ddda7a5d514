"""Lifecycle event subscribers: structured logs, JSONL mirror."""
