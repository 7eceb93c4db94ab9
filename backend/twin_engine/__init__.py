# AAS Twin Engine Backend
"""
AAS Twin Engine

Metadata-federation gateway for Asset Administration Shell descriptors.
Field values of shells, asset information, submodels and descriptors are
sourced live from independently deployed plugins, each authoritative for a
set of semantic identifiers. It uses Eclipse BaSyx Python SDK 2.0.0 for
AAS Metamodel v3.0.1 compliance.

Architecture:
- Manifest Registry: plugin ownership of semantic IDs and conflict resolution
- Aggregation Engine: split, concurrent fan-out, validation and merge
- Template Filler: overlay of merged values on immutable templates
- Reconciliation: cron-driven sync of the shell descriptor registry
"""

__version__ = "1.0.0"
