"""
Services Layer

Business logic for the tournament core:
- rating_table / rating_engine: pure, no I/O
- draw_generator: pure draw planning plus match persistence
- match_lifecycle / finalizer / registration / rankings: session-scoped mutations

Services raise tabletennis.errors kinds and never depend on HTTP objects.
"""
