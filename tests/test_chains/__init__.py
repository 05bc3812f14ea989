"""Tests for upstream RPC lookups and round-robin block resolution."""
