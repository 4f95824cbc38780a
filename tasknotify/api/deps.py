"""API dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends

from tasknotify.pipeline import Pipeline, get_pipeline


def get_pipeline_dependency() -> Pipeline:
    """Get the process-wide pipeline."""
    return get_pipeline()


PipelineDep = Annotated[Pipeline, Depends(get_pipeline_dependency)]
