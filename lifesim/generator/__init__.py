"""Scenario generation: the untrusted boundary between the engine and the LLM.

The engine only ever sees validated `Scenario` / `BirthScenario` values; raw model
output is parsed into a typed result and retried under an explicit policy.
"""
