"""
Test suite for the config-file driven synchronization core.

Covers the event channel and events, the sync task handle, the config
registry, the lifecycle controller, the log router, discovery, the config
file watcher, the mirror sync task and the orchestrator.
"""
