"""Execution engine: the dispatchers, the node handlers and the machine."""
from ubspectre.execution.dispatcher import Dispatcher
from ubspectre.execution.machine import Machine, StackFrame
__all__ = ["Dispatcher", "Machine", "StackFrame"]
