"""Project assistant API endpoints.

Generates small Python automation projects with the LLM and extracts the
files from fenced code blocks.
"""

import structlog
from fastapi import APIRouter, HTTPException, status

from src.api.deps import CurrentUserId, WorkflowGeneratorDep
from src.core.response_parser import extract_code_files
from src.core.workflow_generator import WorkflowGenerationError
from src.models.assistant import (
    ExtractFilesRequest,
    ProjectFile,
    ProjectRequest,
    ProjectResponse,
)

logger = structlog.get_logger()

router = APIRouter()


@router.post("/project", response_model=ProjectResponse)
async def generate_project(
    user_id: CurrentUserId,
    generator: WorkflowGeneratorDep,
    data: ProjectRequest,
) -> ProjectResponse:
    """Answer a project request with code files.

    Telegram projects without a requirements.txt get a default one.
    """
    logger.info(
        "project_generation_requested",
        user_id=user_id,
        request_length=len(data.request),
        current_files=len(data.current_files),
    )

    try:
        result = await generator.generate_project(
            request=data.request,
            current_files=data.current_files,
            session_file_uploaded=data.session_file_uploaded,
        )
    except WorkflowGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        ) from e

    return ProjectResponse(
        response=result.response,
        files=[ProjectFile(**f.to_dict()) for f in result.files],
    )


@router.post("/extract-files", response_model=list[ProjectFile])
async def extract_files(
    user_id: CurrentUserId,
    data: ExtractFilesRequest,
) -> list[ProjectFile]:
    """Extract files from fenced code blocks in arbitrary text."""
    return [ProjectFile(**f.to_dict()) for f in extract_code_files(data.text)]
