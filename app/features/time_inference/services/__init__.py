"""
Service layer for time inference: the sync orchestrator and the engine facade.
"""
