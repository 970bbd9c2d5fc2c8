"""Run monitor — pure read-only projection over the Run Ledger.

Modules
-------
projection
    ``RunProjection`` reads the ledger and produces ``PipelineRun``
    snapshots — a frozen, point-in-time view of a run.
renderer
    ``RunRenderer`` turns ``PipelineRun`` into Rich renderables.
"""
