"""MesFlow - manufacturing execution core (BOM explosion, routing, scheduling, execution)."""
