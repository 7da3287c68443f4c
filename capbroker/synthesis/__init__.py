"""Script synthesis - templates first, then the generation collaborator."""

from .synthesizer import (
    ScriptSynthesizer,
    SynthesisOutcome,
    SynthesisRequest,
    TextGenerator,
    extract_parameters,
    parse_script_response,
)
from .templates import TEMPLATES, ScriptTemplate, TemplateMatch, match_template

__all__ = [
    "ScriptSynthesizer",
    "SynthesisOutcome",
    "SynthesisRequest",
    "TextGenerator",
    "extract_parameters",
    "parse_script_response",
    "TEMPLATES",
    "ScriptTemplate",
    "TemplateMatch",
    "match_template",
]
