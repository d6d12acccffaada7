from __future__ import annotations
import json
from typing import Any, Optional

from sqlalchemy.orm import Session

from .models import StoredBlob


EXAMS_KEY = "exams"
VOCABULARY_KEY = "vocabList"
SETTINGS_KEY = "appSettings"


class Store:
	"""JSON blobs under named keys, backed by the ``kv_store`` table."""

	def __init__(self, db: Session) -> None:
		self.db = db

	def get_json(self, key: str, default: Any = None) -> Any:
		row = self.db.get(StoredBlob, key)
		if row is None:
			return default
		return json.loads(row.payload_json)

	def put_json(self, key: str, value: Any) -> None:
		payload = json.dumps(value, ensure_ascii=False)
		row = self.db.get(StoredBlob, key)
		if row is None:
			row = StoredBlob(key=key, payload_json=payload)
			self.db.add(row)
		else:
			row.payload_json = payload
		self.db.commit()

	def delete(self, key: str) -> bool:
		row: Optional[StoredBlob] = self.db.get(StoredBlob, key)
		if row is None:
			return False
		self.db.delete(row)
		self.db.commit()
		return True
