"""
Services Layer

Bracket, schedule and reset logic that:
- Accepts domain inputs (IDs, sessions, windows)
- Returns domain outputs (models and plain dataclasses)
- Does NOT depend on HTTP request/response objects
- Raises EngineError subclasses; routes map them to status codes
"""
