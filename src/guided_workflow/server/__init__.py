"""REST API server (FastAPI).

This package exposes the workflow engine over HTTP so a chat UI can start
sessions, submit answers and render guidance and summaries.
"""

from guided_workflow.server.app import create_app

__all__ = ["create_app"]
