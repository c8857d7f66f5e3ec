"""
Business operations on apostilas: create, edit, read, delete and PDF export.

Ids arrive as strings from the client (JSON body, query string or path) and
are parsed here; anything that is not a UUID is rejected as invalid input
before touching the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from . import s3_service
from .apostilas import ApostilaStore
from .errors import ApostilaNotFoundError, InvalidInputError
from .models import AddApostilaInput, Apostila, EditedApostilaHTML, EditedApostilaInput, RenderPDFInput
from .pdf_renderer import PdfRenderer

logger = logging.getLogger(__name__)


def parse_apostila_id(value: str) -> UUID:
    try:
        return UUID(str(value).strip())
    except ValueError as exc:
        logger.info("Invalid apostila id %r", value)
        raise InvalidInputError(f"invalid apostila id: {value!r}") from exc


@dataclass
class PdfExport:
    pdf: bytes
    download_url: Optional[str] = None


class ApostilaService:
    def __init__(self, apostilas: ApostilaStore, renderer: PdfRenderer):
        self.apostilas = apostilas
        self.renderer = renderer

    def add(self, data: AddApostilaInput, user_id: int) -> Apostila:
        apostila_id = parse_apostila_id(data.id)
        return self.apostilas.insert(apostila_id, user_id).to_model()

    def get_edited_html(self, apostila_id: str, user_id: int) -> EditedApostilaHTML:
        html = self.apostilas.get_edited_html(parse_apostila_id(apostila_id), user_id)
        return EditedApostilaHTML(file=html)

    def edit(self, data: EditedApostilaInput, user_id: int) -> None:
        apostila_id = parse_apostila_id(data.data.id)
        self.apostilas.update_edited_html(apostila_id, data.data.html, user_id)

    def list(self, user_id: int) -> List[Apostila]:
        return [record.to_model() for record in self.apostilas.list_by_user(user_id)]

    def get_by_id(self, apostila_id: str) -> Apostila:
        # Readable by anyone holding the id so apostilas can be shared.
        return self.apostilas.get(parse_apostila_id(apostila_id)).to_model()

    def delete(self, apostila_id: str, user_id: int) -> None:
        self.apostilas.delete(parse_apostila_id(apostila_id), user_id)

    def render_pdf(self, data: RenderPDFInput) -> bytes:
        if not data.data.html.strip():
            raise InvalidInputError("html is required")
        return self.renderer.render(data.data.html)

    def export_pdf(self, apostila_id: str, user_id: int) -> PdfExport:
        """
        Render the stored edited HTML, keep the PDF with the apostila and
        archive it to S3 when a bucket is configured.
        """
        parsed_id = parse_apostila_id(apostila_id)
        html = self.apostilas.get_edited_html(parsed_id, user_id)
        if not html.strip():
            raise InvalidInputError("apostila has no edited HTML to export")

        pdf = self.renderer.render(html)
        self.apostilas.save_pdf(parsed_id, user_id, pdf)

        key = s3_service.pdf_key(user_id, str(parsed_id))
        download_url = None
        if s3_service.upload_pdf(pdf, key):
            download_url = s3_service.generate_presigned_url(key)
        return PdfExport(pdf=pdf, download_url=download_url)

    def get_pdf(self, apostila_id: str, user_id: int) -> bytes:
        pdf = self.apostilas.get_pdf(parse_apostila_id(apostila_id), user_id)
        if pdf is None:
            raise ApostilaNotFoundError("apostila has not been exported yet")
        return pdf
