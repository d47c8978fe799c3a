from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from quizgen.db.base import Base
from quizgen.models.common import TimestampMixin, UUIDPrimaryKeyMixin


class Document(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "documents"

    educator_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="processed", nullable=False, index=True)
    processed_data: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    @property
    def external_document_id(self) -> str | None:
        """Identifier the question generator knows this document by."""
        data = self.processed_data or {}
        return data.get("externalDocumentId") or data.get("trackId") or self.file_path or None
