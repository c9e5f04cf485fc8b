"""
Evidence Custody List

Append-only evidence attached to a session report.
Files are uploaded to the blob store first; only when every upload succeeded
are the entries appended. Nothing is ever removed or reordered.

Blobs uploaded by an attempt that later fails are left in the store. They
are never referenced by a report.
"""
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence
from uuid import uuid4

from ...errors import ForbiddenError, InvalidRequestError, ReportTerminalError, UpstreamFailureError
from ...models.db_models import EvidenceType, ReportEvidenceDB, SessionReportDB
from ..collaborators import BlobStore

logger = logging.getLogger(__name__)

MAX_FILES_PER_UPLOAD = 5
EVIDENCE_FOLDER = "skillbridge/reports/{class_id}"


@dataclass
class EvidenceFile:
    """An uploaded file as received from the client."""
    content: bytes
    file_name: str
    content_type: Optional[str] = None


def classify(content_type: Optional[str]) -> EvidenceType:
    """IMAGE / VIDEO by declared content-type prefix, DOCUMENT otherwise."""
    content_type = (content_type or "").lower()
    if content_type.startswith("image/"):
        return EvidenceType.IMAGE
    if content_type.startswith("video/"):
        return EvidenceType.VIDEO
    return EvidenceType.DOCUMENT


def stored_name(file_name: str) -> str:
    """Collision-resistant blob name that keeps the original file name visible."""
    base = os.path.basename(file_name or "") or "evidence"
    return f"{uuid4()}_{base}"


class EvidenceCustody:
    """Uploads evidence files and appends them to reports."""

    def __init__(self, blob_store: BlobStore):
        self.blob_store = blob_store

    @staticmethod
    def check_count(files: Sequence[EvidenceFile], minimum: int = 0) -> None:
        if len(files) < minimum:
            raise InvalidRequestError(f"At least {minimum} evidence file(s) required")
        if len(files) > MAX_FILES_PER_UPLOAD:
            raise InvalidRequestError(f"At most {MAX_FILES_PER_UPLOAD} evidence files per upload")

    def upload(self, files: Sequence[EvidenceFile], class_id: str, now: datetime) -> List[ReportEvidenceDB]:
        """
        Upload every file and build (unattached) evidence entries.

        Raises:
            UpstreamFailureError on the first failed upload
        """
        folder = EVIDENCE_FOLDER.format(class_id=class_id)
        entries: List[ReportEvidenceDB] = []

        for f in files:
            name = stored_name(f.file_name)
            try:
                url = self.blob_store.upload(f.content, folder, name)
            except UpstreamFailureError:
                logger.error(f"Error uploading evidence file {f.file_name}")
                raise
            except Exception as e:
                logger.error(f"Error uploading evidence file {f.file_name}: {e}")
                raise UpstreamFailureError(f"Could not upload file {f.file_name}") from e

            entries.append(ReportEvidenceDB(
                id=str(uuid4()),
                url=url,
                type=classify(f.content_type),
                file_name=f.file_name,
                stored_name=name,
                uploaded_at=now,
            ))

        return entries

    @staticmethod
    def append(report: SessionReportDB, entries: Sequence[ReportEvidenceDB]) -> None:
        """Attach entries after the existing evidence, preserving order."""
        start = len(report.evidence)
        for offset, entry in enumerate(entries):
            entry.position = start + offset
            report.evidence.append(entry)

    @staticmethod
    def authorize_append(report: SessionReportDB, caller_id: str) -> None:
        """
        Raises:
            ForbiddenError if the caller is not the reporter
            ReportTerminalError if the report is RESOLVED or DISMISSED
        """
        if report.reported_by_user_id != caller_id:
            raise ForbiddenError("Only the reporter can add evidence")
        if report.is_terminal:
            raise ReportTerminalError("Cannot add evidence to a closed report")

    def add(
        self,
        report: SessionReportDB,
        caller_id: str,
        files: Sequence[EvidenceFile],
        now: datetime,
    ) -> List[ReportEvidenceDB]:
        """Append evidence to an existing report. All-or-nothing."""
        self.authorize_append(report, caller_id)
        self.check_count(files, minimum=1)
        entries = self.upload(files, report.class_id, now)
        self.append(report, entries)
        return entries
