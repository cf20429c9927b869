"""taskcrew: hierarchical LLM task orchestration with verification and escalation."""

__version__ = "0.3.0"
