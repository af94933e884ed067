"""Engine-wide ports (interfaces)."""
