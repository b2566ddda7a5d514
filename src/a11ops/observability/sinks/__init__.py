"""Event sinks: where lifecycle event dicts get written."""

from a11ops.observability.sinks.jsonl_sink import JsonlSink

__all__ = ["JsonlSink"]
