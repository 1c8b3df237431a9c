"""Agent internals -- the execution core behind run_agent.AIAgent.

- future: single-assignment Future with all/race/all_settled combinators
- pool: bounded-window execution shared by tool batches and batch runs
- context / result: per-run conversation state and its structured outcome
- react_loop: the reason/act/observe loop driving one run
- config, errors, trajectory: run configuration, error types, JSONL export
"""
