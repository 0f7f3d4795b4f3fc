"""AgentPod: on-demand sandbox orchestration."""

__version__ = "0.1.0"
