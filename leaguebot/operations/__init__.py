"""
Operations Layer

Business logic for the rating subsystem. Each module owns one concern and
takes the Database (plus its collaborators) in its constructor:

- RatingUpdateEngine: Bayesian rating updates for a contest
- ConfirmationWorkflow: multi-approver gate in front of every result
- DecayEngine: inactivity decay, including virtual time
- OperationLog: snapshot-based undo/redo
- AuditTrail: append-only rating history
- ManualEditOperations: admin edits outside the confirmation gate
"""
