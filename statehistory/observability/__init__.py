"""Logging and Prometheus metrics for statehistory."""
