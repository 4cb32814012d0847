"""Runnable composition: units, sequences, adapters and batch execution"""

from chainkit.runnable.options import RunnableOptions, merge_options
from chainkit.runnable.base import BatchOptions, Runnable, coerce_to_runnable
from chainkit.runnable.parallel import RunnableMap, resolve_batch_options, run_batch
from chainkit.runnable.pipeline import RunnableSequence
from chainkit.runnable.adapters import (
    RunnableBinding,
    RunnableFunction,
    RunnableMapInput,
    RunnableMapOutput,
    RunnablePassthrough,
)

__all__ = [
    'BatchOptions',
    'Runnable',
    'RunnableBinding',
    'RunnableFunction',
    'RunnableMap',
    'RunnableMapInput',
    'RunnableMapOutput',
    'RunnableOptions',
    'RunnablePassthrough',
    'RunnableSequence',
    'coerce_to_runnable',
    'merge_options',
    'resolve_batch_options',
    'run_batch',
]
