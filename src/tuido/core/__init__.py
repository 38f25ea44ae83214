"""Core sync engine, local storage and transport for tuido."""
