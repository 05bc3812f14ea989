"""Tests for the run coordinator, notifier, configuration and CLI."""
