# sockops/units/__init__.py - Feature unit lifecycle
"""
Feature units and their enable/disable transitions.

This module provides:
- pipeline.py: Ordered steps with abort or best-effort policy
- features.py: The sockmap, skmsg and kTLS units
- controller.py: Public enable/disable entry points
"""
