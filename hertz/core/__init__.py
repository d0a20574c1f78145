"""
Core reconciler runtime.

- prop_diff: attribute diffs and their apply/disown actions
- peripheral: peripheral instance base class and lifecycle
- registry: node records and the declared tree
- orchestrator: per-node ordering of init/update/dispose
- poller: round-robin change detection
- renderer: element trees as the source of declarations
- reconciler: wiring of all of the above
"""
