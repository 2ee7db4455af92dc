"""Structured research answers from a local language model."""
