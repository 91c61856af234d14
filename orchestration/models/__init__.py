"""Wire-format schema and caller-facing configuration types."""
