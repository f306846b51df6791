"""
atacdiff - Differential chromatin accessibility from ATAC-seq peak sets.

Merges per-sample peak calls into one region set, filters it, tests it
for differential accessibility and writes an annotated result table.
"""

__version__ = "0.1.0"
