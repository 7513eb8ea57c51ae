"""Domain layer (pure logic).

- Keep fairness math here: seed hashing, outcome derivation, game mappers.
- Avoid I/O: no DB sessions, no HTTP/FastAPI.
- Deterministic functions only; randomness is drawn from ``secrets`` in the
  seed generators and nowhere else.
"""
