from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text
from .db import Base


class StoredBlob(Base):
	__tablename__ = "kv_store"
	# Named key, e.g. "exams", "vocabList", "appSettings"
	key = Column(String(64), primary_key=True, index=True)
	payload_json = Column(Text, nullable=False)  # JSON string snapshot
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
