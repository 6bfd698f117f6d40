"""Prometheus metrics."""

from docquery.infra.metrics.prometheus import REGISTRY

__all__ = ["REGISTRY"]
