"""HTTP API for sf-time-machine."""
