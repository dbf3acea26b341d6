"""desktop-trampoline: forward a CLI invocation to a local desktop app.

Git runs the trampoline as a credential helper or askpass program; the
trampoline sends its arguments, a few allow-listed environment variables and
its stdin to the desktop app over a loopback TCP socket, then prints the
stdout and stderr the app sends back.

Usage:
    DESKTOP_PORT=5775 desktop-trampoline get < credential-request
"""

__all__ = ['main']


def __getattr__(name: str):
	"""Lazy import so ``python -m desktop_trampoline.main`` runs without runpy warnings."""
	if name == 'main':
		from desktop_trampoline.main import main

		return main
	raise AttributeError(f'module {__name__!r} has no attribute {name!r}')
