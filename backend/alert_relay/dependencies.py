"""FastAPI dependencies."""
from fastapi import Request

from .services.pipeline import AlertPipeline


def get_pipeline(request: Request) -> AlertPipeline:
    """The pipeline built at startup."""
    return request.app.state.pipeline
