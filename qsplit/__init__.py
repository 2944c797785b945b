"""Python API for qsplit."""

from .arena import SubsystemArena, SubsystemHandle
from .backends import Backend, DenseUnit
from .bitlist import (
    BitListEntry,
    ordered_bit_list,
    parallel_bit_list,
    optimize_parallel_bit_list,
)
from .config import Config, DEFAULT
from .entangler import Entangler
from .errors import (
    QsplitError,
    InvalidQubitError,
    StaleHandleError,
    SubsystemAllocationError,
    PartitionInvariantError,
)
from .lookup import IndexTable, QubitLookup
from .reorder import sort_subsystem
from .separated import SeparatedUnit

__all__ = [
    "SubsystemArena",
    "SubsystemHandle",
    "Backend",
    "DenseUnit",
    "BitListEntry",
    "ordered_bit_list",
    "parallel_bit_list",
    "optimize_parallel_bit_list",
    "Config",
    "DEFAULT",
    "Entangler",
    "QsplitError",
    "InvalidQubitError",
    "StaleHandleError",
    "SubsystemAllocationError",
    "PartitionInvariantError",
    "IndexTable",
    "QubitLookup",
    "sort_subsystem",
    "SeparatedUnit",
]
