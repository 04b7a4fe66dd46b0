"""Jobs for keeping the graph and the hierarchies current.

This module contains caller-driven jobs for:
- Relational → graph sync
- Orphan cleanup
- Hierarchy reload and rebuild
"""
