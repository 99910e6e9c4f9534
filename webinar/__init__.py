"""Evergreen webinar scheduling and access-control engine."""
