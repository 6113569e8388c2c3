"""Shared infrastructure for familycal: settings, logging, clock and errors."""
