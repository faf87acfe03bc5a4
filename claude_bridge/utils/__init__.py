"""Shared helpers for claude-bridge."""
