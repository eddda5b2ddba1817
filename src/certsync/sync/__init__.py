"""Disk synchronisation: maintenance window, reconciliation and scheduling."""
