"""Roster projection, filtering and reconciliation for wedding rosters."""
