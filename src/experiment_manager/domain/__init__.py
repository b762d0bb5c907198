"""Domain models shared across the experiment manager layers."""
