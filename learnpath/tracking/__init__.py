"""Aggregation and award engine: the entry point for tracking operations."""

from .engine import ModuleProgressView, ProgressOutcome, TrackingEngine


__all__ = ["ModuleProgressView", "ProgressOutcome", "TrackingEngine"]
