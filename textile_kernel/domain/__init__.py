"""Pure domain layer: decimal values, costing math, numbering, planning."""
