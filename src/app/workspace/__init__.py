"""Relationship workspace -- accounts, contacts, tasks and the session logic around them.

Provides pydantic entity schemas, the WorkspaceStore write interface, a
per-snapshot LookupIndex, selection reconciliation guarded against a
session's own in-flight writes, duplicate detection, batch contact import,
and bulk delete/export over a selection.
"""
