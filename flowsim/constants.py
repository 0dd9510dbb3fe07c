"""Physical constants and fixed names used throughout :mod:`flowsim`."""
from __future__ import annotations

#: Standard gravity [m s^-2]
GRAVITY = 9.80665
#: Pascal per bar
BARSA = 1.0e5

#: Upper bound for the default thread count on shared nodes
MAX_DEFAULT_THREADS = 4
THREAD_ENV_VAR = "OMP_NUM_THREADS"

#: Extensions tried, in order, when resolving an input case
DECK_EXTENSIONS = ("data", "DATA")
PARAM_FILE_SUFFIXES = (".param", ".yaml", ".yml")

PARAM_SNAPSHOT_NAME = "simulation.param"
WALLTIME_NAME = "walltime.txt"
PRT_SUFFIX = ".PRT"
DEBUG_SUFFIX = ".DEBUG"

DEFAULT_FRAMEWORK = "flowsim.reference:ReferenceFramework"
DEFAULT_REF_PRESSURE_BAR = 100.0

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
