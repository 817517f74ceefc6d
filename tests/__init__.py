"""
Tests for Assembler

This package contains tests for:
- Core data model (frames, handles, rules, objects, catalog, field)
- Collision, occlusion and the spatial index
- Selection heuristics and environment constraints
- The aggregation engine, its outputs and resume files
"""
