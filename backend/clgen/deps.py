from fastapi import Request

from clgen.services.pipeline import CoverLetterPipeline


# Dependency
def get_pipeline(request: Request) -> CoverLetterPipeline:
    return request.app.state.pipeline
