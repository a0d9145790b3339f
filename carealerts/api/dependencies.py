"""
FastAPI dependency injection for Care Alerts services.
"""

from typing import Annotated

from fastapi import Depends, Request

from carealerts.pipeline import CareAlertsPipeline
from carealerts.store.sqlite import CareStore


def get_pipeline(request: Request) -> CareAlertsPipeline:
    """Get CareAlertsPipeline singleton from lifespan state."""
    return request.app.state.pipeline


def get_store(request: Request) -> CareStore:
    """Get the CareStore behind the pipeline."""
    return request.app.state.pipeline.store


PipelineDep = Annotated[CareAlertsPipeline, Depends(get_pipeline)]
StoreDep = Annotated[CareStore, Depends(get_store)]
