"""
Gateway server module.

The FastAPI application (gw_server.app) plus the pieces it wires together:
configuration, API key checks, the job status aggregator, the tool surface
exposed to the completion service, webhook routing and notification
dispatch.
"""
