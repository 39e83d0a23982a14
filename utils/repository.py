import os
import uuid
import fcntl
import hashlib
import logging
from pathlib import Path
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional

from pydantic import ValidationError as SchemaError

from models.document import Document, DocumentDraft
from models.user import UserRecord
from utils.config import get_settings
from utils.errors import ConflictError, PersistenceError

logger = logging.getLogger("repository")


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _read_locked(path: Path) -> Optional[str]:
	try:
		with open(path, "r", encoding="utf-8") as f:
			# Shared lock for reading
			fcntl.flock(f.fileno(), fcntl.LOCK_SH)
			content = f.read()
			fcntl.flock(f.fileno(), fcntl.LOCK_UN)
		return content
	except FileNotFoundError:
		return None


def _create_file(path: Path, content: str) -> None:
	"""Publish ``content`` at ``path`` only if nothing is there yet.

	The record is written and synced under a unique temp name, then hard-linked
	into place, so readers see either no file or the complete file.
	"""
	path.parent.mkdir(parents=True, exist_ok=True)
	tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
	try:
		with open(tmp_path, "x", encoding="utf-8") as f:
			f.write(content)
			f.flush()
			os.fsync(f.fileno())
		# Raises FileExistsError when the record already exists
		os.link(tmp_path, path)
	finally:
		try:
			tmp_path.unlink()
		except FileNotFoundError:
			pass


class DocumentRepository:
	"""Stores one JSON file per document under ``<state_dir>/documents``."""

	def __init__(self, state_dir: str):
		self.root = Path(state_dir).resolve() / "documents"

	def _path(self, doc_id: str) -> Path:
		return self.root / f"{doc_id}.json"

	def _load(self, path: Path) -> Optional[Document]:
		content = _read_locked(path)
		if content is None:
			return None
		try:
			return Document.model_validate_json(content)
		except SchemaError:
			logger.error("document_record_corrupt", extra={"file_name": path.name}, exc_info=True)
			return None

	def create(self, draft: DocumentDraft) -> Document:
		now = _utcnow()
		document = Document(
			id=uuid.uuid4().hex,
			created_at=now,
			updated_at=now,
			**draft.model_dump(),
		)
		try:
			_create_file(self._path(document.id), document.model_dump_json(by_alias=True))
		except (OSError, TypeError, ValueError) as exc:
			raise PersistenceError() from exc
		return document

	def get(self, doc_id: str) -> Optional[Document]:
		return self._load(self._path(doc_id))

	def list_by_owner(self, owner: str) -> List[Document]:
		if not self.root.exists():
			return []
		documents = []
		for path in self.root.glob("*.json"):
			document = self._load(path)
			if document is not None and document.owner == owner:
				documents.append(document)
		# Most recent first
		documents.sort(key=lambda d: d.created_at, reverse=True)
		return documents

	def delete(self, doc_id: str) -> bool:
		try:
			self._path(doc_id).unlink()
		except FileNotFoundError:
			return False
		except OSError as exc:
			raise PersistenceError("Failed to delete document") from exc
		return True


class UserRepository:
	"""Stores users under ``<state_dir>/users``, one file per normalized email."""

	def __init__(self, state_dir: str):
		self.root = Path(state_dir).resolve() / "users"

	@staticmethod
	def _email_key(email: str) -> str:
		return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()

	def _path(self, email: str) -> Path:
		return self.root / f"{self._email_key(email)}.json"

	def get_by_email(self, email: str) -> Optional[UserRecord]:
		content = _read_locked(self._path(email))
		if content is None:
			return None
		return UserRecord.model_validate_json(content)

	def create(self, name: str, email: str, password_hash: str) -> UserRecord:
		user = UserRecord(id=uuid.uuid4().hex, name=name, email=email, password_hash=password_hash)
		try:
			_create_file(self._path(email), user.model_dump_json())
		except FileExistsError as exc:
			raise ConflictError("User with this email already exists.") from exc
		except OSError as exc:
			raise PersistenceError("Failed to save user") from exc
		return user


@lru_cache(maxsize=1)
def get_document_repository() -> DocumentRepository:
	return DocumentRepository(get_settings().state_dir)


@lru_cache(maxsize=1)
def get_user_repository() -> UserRepository:
	return UserRepository(get_settings().state_dir)
