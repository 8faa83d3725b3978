"""AppForge: prompt-to-source app builder."""

__version__ = "0.1.0"
