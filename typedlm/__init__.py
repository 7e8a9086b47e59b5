"""typedlm: typed outputs from text-completion language models."""

from typedlm.adapters import ChatAdapter, DefaultAdapter, JSONAdapter, TwoStepAdapter, resolve_adapter
from typedlm.attachments import Attachments
from typedlm.config import Settings
from typedlm.errors import Err, ErrorKind, LMTransportError, Ok, ParseOutcome, PredictionError, TaggedError, ValidationIssue
from typedlm.history import History
from typedlm.runtime import AdapterCallback, CallbackEvent, Phase, Pipeline, Predict, RunOptions, run
from typedlm.signature import Field, FieldKind, InputField, OutputField, Signature
from typedlm.tools import ToolCall, ToolParameter, ToolSpec

__version__ = '0.1.0'

__all__ = [
    'AdapterCallback',
    'Attachments',
    'CallbackEvent',
    'ChatAdapter',
    'DefaultAdapter',
    'Err',
    'ErrorKind',
    'Field',
    'FieldKind',
    'History',
    'InputField',
    'JSONAdapter',
    'LMTransportError',
    'Ok',
    'OutputField',
    'ParseOutcome',
    'Phase',
    'Pipeline',
    'Predict',
    'PredictionError',
    'RunOptions',
    'Settings',
    'Signature',
    'TaggedError',
    'ToolCall',
    'ToolParameter',
    'ToolSpec',
    'TwoStepAdapter',
    'ValidationIssue',
    'resolve_adapter',
    'run',
]
