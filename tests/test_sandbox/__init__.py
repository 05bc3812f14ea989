"""Tests for sandbox provisioning and liveness polling."""
