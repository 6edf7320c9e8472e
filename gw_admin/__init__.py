"""Operator command line for the job gateway (gw-admin)."""
