"""Economic event templates, effects and injection."""

from .effects import EffectContext, apply_effect
from .injector import EventInjector, EventRunSummary
from .templates import DEFAULT_EVENT_TEMPLATES, find_template

__all__ = [
    "EffectContext",
    "apply_effect",
    "EventInjector",
    "EventRunSummary",
    "DEFAULT_EVENT_TEMPLATES",
    "find_template",
]
