"""TaskGate — keyed task admission and dispatch service.

Accepts named, timed units of work over HTTP and runs them under a
fixed concurrency limit, queueing excess or duplicate-key work and
promoting it as running slots free up.
"""

__version__ = "1.0.0"
