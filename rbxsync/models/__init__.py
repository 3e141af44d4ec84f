"""Value types shared by the planner, reconciler, and drift detector."""
