from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models.

    Timestamps are naive wall-clock values in the clinic's local time, which is
    how appointment times are entered and compared.
    """
    type_annotation_map = {
        datetime: DateTime(),
    }
