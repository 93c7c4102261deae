"""Tests for the negative inverter package."""
