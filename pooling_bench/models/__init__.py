"""Paradigm fit functions and the three pooling fitters."""
