from convopilot.services.directives.base import CommandResult, ExecutionContext, UserSession
from convopilot.services.directives.executor import DirectiveExecutor, RenderedReply, clean_whitespace
from convopilot.services.directives.grammar import (
    IndexDirective,
    MalformedDirective,
    ModelOutput,
    NamedDirective,
    OutputKind,
    classify_model_output,
    parse_directives,
    parse_params,
)
from convopilot.services.directives.handlers import BookingHandlers

__all__ = [
    "BookingHandlers",
    "CommandResult",
    "DirectiveExecutor",
    "ExecutionContext",
    "IndexDirective",
    "MalformedDirective",
    "ModelOutput",
    "NamedDirective",
    "OutputKind",
    "RenderedReply",
    "UserSession",
    "classify_model_output",
    "clean_whitespace",
    "parse_directives",
    "parse_params",
]
