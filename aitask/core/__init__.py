"""Core orchestration package.

Architectural role:
    Sits between the public call surface (`aitask.ai_task`, HTTP API, CLI) and the
    provider adapters.

Composition:
    - `types`: Request, candidate, attempt-outcome and response contracts.
    - `errors`: Exception types and failure-kind constants.
    - `fallback`: Candidate queue construction and retry/advance policy.
    - `dispatcher`: Fingerprinting, cache short-circuit and the public functions.

Determinism and side effects:
    Package import is side-effect free. Network and cache I/O happen only while a
    request is dispatched.
"""
