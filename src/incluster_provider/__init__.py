"""In-Cluster Provider: reconciles in-cluster databases and operator packages."""

__version__ = "0.1.0"
