"""Shared infrastructure for the rotation demo worker.

Provides the Temporal connection manager, task queue constants, settings,
the error taxonomy, and the credential contract types used across packages.
"""
