"""Test-suite for the live telemetry dashboard."""
