"""Supervisor: composition root, lifecycle and supervised loops."""

from token_aggregator.app.supervisor.manager import Supervisor

__all__ = ["Supervisor"]
