"""FileRecord model - file metadata (actual bytes live in the object store)."""
import uuid
from sqlalchemy import BigInteger, Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from filevault.models.base import Base, TimestampMixin
from filevault.services.policies import Visibility

DEFAULT_MIME_TYPE = "application/octet-stream"


def generate_file_id() -> str:
    return f"file_{uuid.uuid4().hex}"


class FileRecord(Base, TimestampMixin):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_file_id)
    purpose: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    key: Mapped[str] = mapped_column(String(1000), nullable=False, unique=True)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False, default=DEFAULT_MIME_TYPE)
    ref_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    visibility: Mapped[Visibility] = mapped_column(
        Enum(Visibility, name="file_visibility"),
        nullable=False,
        default=Visibility.private,
    )

    __table_args__ = (
        Index("files_key_idx", "key"),
        Index("files_created_at_idx", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<FileRecord {self.id} key={self.key} ref_count={self.ref_count}>"
