"""
Pure reconciliation logic: no database, no HTTP.

- drawing_batch: text codec for multi-drawing batches
- ledger: ordered vs released quantity of a work item
- aggregation: step verdicts folded into inspection totals and status
- reconciler: derived/overridden inspection header bookkeeping
- workflow: release lifecycle state machine
"""
