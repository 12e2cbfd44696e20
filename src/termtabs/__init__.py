"""termtabs -- Session lifecycle core for a tabbed web terminal.

This package drives the per-tab connection to a locally running terminal
server (ttyd): a state machine per tab that separates transient startup
failures from fatal ones, a liveness timeout, and a persisted client
identity used to authenticate to the server over mutual TLS. Rendering is
left to an external terminal surface.
"""

__version__ = "0.1.0"
