"""Kubernetes and target-system services."""
