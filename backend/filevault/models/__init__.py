"""Import all models so SQLAlchemy metadata knows about them."""
from filevault.models.base import Base
from filevault.models.file_record import FileRecord

__all__ = [
    "Base",
    "FileRecord",
]
