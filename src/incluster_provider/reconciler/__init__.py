"""Generic reconciliation control loop."""
