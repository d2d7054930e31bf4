"""Orchestration core: contracts, applier, readiness gates, phases."""
