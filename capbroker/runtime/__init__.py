"""Runtime - interpreter calls, dispatch, negotiation and the registry.

The registry is imported from `capbroker.runtime.registry` directly; this
package only exposes the leaf modules to avoid import cycles with the
scanners and adapters that build on the interpreter runner.
"""

from .interpreter import InterpreterRunner, ProcessOutcome

__all__ = ["InterpreterRunner", "ProcessOutcome"]
