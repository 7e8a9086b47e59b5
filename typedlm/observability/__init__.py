from .tracing import log_event, logger, new_call_id

__all__ = ['log_event', 'logger', 'new_call_id']
