"""Metric and lexical engines evaluated against a SourceUnit."""
