"""Kernel services: sequencing, costing, stock ledger, audit, step-up gate."""
