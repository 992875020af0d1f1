"""Shared plumbing: config, timers, transport contract, artwork."""
