"""
Backend services for the AAS Twin Engine.

Aggregation pipeline:
- Manifest Registry: plugin ownership and conflict resolution
- Splitter / Aggregator / Merger: per-plugin requests, fan-out and merge
- Template Filler: merged values onto immutable templates
- Reconciliation: scheduled registry synchronisation
"""
