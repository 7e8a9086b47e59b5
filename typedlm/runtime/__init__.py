from .callbacks import AdapterCallback, CallbackEvent, Phase, emit, merge_callbacks
from .pipeline import Pipeline, RunOptions, run
from .predict import Predict
from .repair import RETRYABLE_KINDS, RetryController, build_retry_prompt

__all__ = [
    'AdapterCallback',
    'CallbackEvent',
    'Phase',
    'Pipeline',
    'Predict',
    'RETRYABLE_KINDS',
    'RetryController',
    'RunOptions',
    'build_retry_prompt',
    'emit',
    'merge_callbacks',
    'run',
]
