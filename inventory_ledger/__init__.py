"""Inventory ledger and pricing consistency service."""
