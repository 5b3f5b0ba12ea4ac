"""Common infrastructure: errors, logging and metrics."""
