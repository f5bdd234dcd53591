"""
Core Orchestration Components.

Structure:
    models/: Pure data structures (no business logic)
    logic/: Pure business rules (topology, transitions, execution factory)
    errors.py: Error codes and classification
    utils.py: Time and id helpers
"""
