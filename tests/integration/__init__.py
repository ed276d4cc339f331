"""Integration tests: real subprocesses and, where available, a real container engine."""
