"""Project assistant schemas.

Request and response shapes for the Python project assistant, which answers
with fenced code blocks that are extracted into files.
"""

from sqlmodel import Field, SQLModel


class ProjectFile(SQLModel):
    """A file extracted from the assistant's answer."""

    name: str
    content: str
    language: str


class ProjectRequest(SQLModel):
    """Schema for a project assistant turn."""

    request: str = Field(
        min_length=1,
        max_length=10000,
        description="The user's latest message",
    )
    current_files: list[str] = Field(
        default_factory=list,
        description="Names of files already in the project",
    )
    session_file_uploaded: bool = Field(
        default=False,
        description="Whether a Telegram session file has been uploaded",
    )


class ProjectResponse(SQLModel):
    """Schema for a project assistant answer."""

    response: str
    files: list[ProjectFile] = Field(default_factory=list)


class ExtractFilesRequest(SQLModel):
    """Schema for extracting files from arbitrary model output."""

    text: str = Field(max_length=200000)
