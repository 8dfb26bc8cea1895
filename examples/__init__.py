"""Example OMT-G schemas."""
