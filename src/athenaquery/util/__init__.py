"""Shared helpers for the Athena query client."""
