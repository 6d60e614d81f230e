"""External clients for the managed resource kinds."""
