"""Kubernetes client wrappers and record models."""
