"""AppForge generation module.

Turns a specification into project files through the completion provider.

Key classes:
    CodeBlockExtractor - Fenced, filename-annotated block parsing
    PromptRenderer     - Jinja2 system/user/planning prompts
    PlanningAgent      - Optional component breakdown for long specs
    CodeGenerator      - Single-call generation with truncation detection
"""

from .code_generator import CodeGenerator
from .extractor import CodeBlockExtractor, extract, to_file_map
from .planner import PlanningAgent
from .prompts import PROFILES, FrameworkProfile, PromptRenderer, default_file_name

__all__ = [
    "CodeBlockExtractor",
    "extract",
    "to_file_map",
    "PromptRenderer",
    "FrameworkProfile",
    "PROFILES",
    "default_file_name",
    "PlanningAgent",
    "CodeGenerator",
]
