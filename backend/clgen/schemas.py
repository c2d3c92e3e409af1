from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CoverLetterRequest(CamelModel):
    # validated by the pipeline so a missing field gets the same 400 as an empty one
    job_title: Optional[str] = Field(default=None, alias="jobTitle")
    company: Optional[str] = None
    job_description: Optional[str] = Field(default="", alias="jobDescription")


class ResumeDetail(CamelModel):
    id: int
    filename: str
    original_name: str = Field(serialization_alias="originalName")
    file_size: int = Field(serialization_alias="fileSize")
    content: str
    uploaded_at: datetime = Field(serialization_alias="uploadedAt")


class CoverLetterSummary(CamelModel):
    id: int
    job_title: str = Field(serialization_alias="jobTitle")
    company: str
    pdf_url: str = Field(serialization_alias="pdfUrl")
    created_at: datetime = Field(serialization_alias="createdAt")


class CoverLetterDetail(CoverLetterSummary):
    job_description: str = Field(serialization_alias="jobDescription")
    cover_letter: str = Field(serialization_alias="coverLetter")
