"""FX Pulse: live market analytics dashboard core.

Runtime layer around ``fxpulse_core``: the shared feed connection, the
message router, per-consumer caches, the dashboard consumers and the HTTP
read API.
"""
