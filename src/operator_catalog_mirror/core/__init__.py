"""Core types, session handling and registry transport."""
