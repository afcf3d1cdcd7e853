"""Infrastructure layer — operational concerns for the mixing and mastering pipelines.

Modules:
    metrics     Prometheus metrics registry (passes, latency, skipped tracks).
"""
