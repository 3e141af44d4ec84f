"""State reconciliation engine.

This package provides:
- Planner: diff desired state against the checkpoint into a sync plan
- Reconciler: apply a plan, checkpointing after every remote mutation
- Drift detection: pull live remote state back with three-way icon merging
- Rename: local-only rekeying that keeps checkpoint linkage
"""
