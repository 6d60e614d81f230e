"""Builders for target-cluster artifacts and bound clients."""
