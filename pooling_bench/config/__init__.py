"""Run settings and the pooling model registry."""
