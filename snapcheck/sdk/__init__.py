"""Worker-side SDK: define flows with a RunContext and serve them."""

from snapcheck.sdk.context import FlowBuilder, RunContext, serialize_snapshot
from snapcheck.sdk.server import create_worker_app

__all__ = ["FlowBuilder", "RunContext", "create_worker_app", "serialize_snapshot"]
