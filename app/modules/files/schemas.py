"""
Types shared by everything that talks to the artifact store
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ArtifactKind(str, Enum):
    """Top-level folder of an artifact path"""
    INVOICE = "Invoices"
    EXPENSE = "Expense"


class ArtifactCategory(str, Enum):
    """Optional sub-folder under the kind"""
    UPLOADED_DOCUMENTS = "Uploaded_Documents"
    GENERATED_PDFS = "Generated_pdfs"


class DownloadedArtifact(BaseModel):
    content: bytes
    content_type: str
    content_length: int
    file_name: Optional[str] = None
