from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text
from .db import Base


class StorageItem(Base):
	__tablename__ = "storage_items"
	# One row per storage key; value is a JSON document
	key = Column(String(128), primary_key=True, index=True)
	value = Column(Text, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
