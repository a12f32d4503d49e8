"""Ticketing webhook ingestion."""
