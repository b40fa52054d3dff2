"""Workflow definitions module."""

from workflows.posting_sweep_workflow import PostingSweepWorkflow, PostingSweepWorkflowInput

__all__ = ["PostingSweepWorkflow", "PostingSweepWorkflowInput"]
