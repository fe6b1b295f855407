"""
Reply Orchestrator
AI pipeline that classifies customer messages, grounds replies in a
workspace knowledge base, scores confidence and escalates to a human
when the answer is uncertain.
"""

__version__ = "1.0.0"
