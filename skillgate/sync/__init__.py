"""Template sync — the platform layer for propagating a reference tree.

This package provides the primitives for:
- Differencing: classifying every reference entry against the target tree
- Resolution: turning a classification plus a conflict policy into an action
- Synchronization: applying actions and logging each outcome
- Drift detection: reporting divergence without touching the target
- History: an append-only record of sync runs kept in the target
"""
