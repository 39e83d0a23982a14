import io
import os
import shutil
import tempfile
import importlib
import pytest
from fastapi.testclient import TestClient
from pypdf import PdfWriter
import sys

# Ensure project root is on sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
	sys.path.insert(0, PROJECT_ROOT)

from services.storage import StoredObject
from utils.errors import StorageError


class FakeObjectStore:
	"""In-memory object store that records every call."""

	def __init__(self, fail_upload=False, fail_delete=False):
		self.fail_upload = fail_upload
		self.fail_delete = fail_delete
		self.objects = {}
		self.calls = []

	def upload(self, payload, key, content_type="application/pdf"):
		self.calls.append(("upload", key))
		if self.fail_upload:
			raise StorageError("provider unreachable")
		self.objects[key] = payload
		return StoredObject(url=f"https://storage.test/{key}", provider_id=key)

	def delete(self, provider_id):
		self.calls.append(("delete", provider_id))
		if self.fail_delete:
			raise StorageError("provider unreachable")
		return "ok" if self.objects.pop(provider_id, None) is not None else "not found"

	def open_stream(self, provider_id):
		self.calls.append(("open_stream", provider_id))
		payload = self.objects[provider_id]

		def iterator(chunk_size=1024 * 64):
			for start in range(0, len(payload), chunk_size):
				yield payload[start:start + chunk_size]

		return iterator, {"content_type": "application/pdf", "content_length": len(payload)}, lambda: None


class FakeExtractor:
	def __init__(self, entities=None, error=None):
		self.entities = entities or []
		self.error = error
		self.calls = []

	def extract(self, cleaned_text):
		self.calls.append(cleaned_text)
		if self.error is not None:
			raise self.error
		return list(self.entities)


def make_pdf(pages: int = 2) -> bytes:
	writer = PdfWriter()
	for _ in range(pages):
		writer.add_blank_page(width=612, height=792)
	buffer = io.BytesIO()
	writer.write(buffer)
	return buffer.getvalue()


@pytest.fixture(scope="session")
def temp_dirs():
	base = tempfile.mkdtemp(prefix="deepsearch_tests_")
	state_dir = os.path.join(base, "state")
	logs_dir = os.path.join(base, "logs")
	os.makedirs(state_dir, exist_ok=True)
	os.makedirs(logs_dir, exist_ok=True)
	yield {"base": base, "state": state_dir, "logs": logs_dir}
	shutil.rmtree(base, ignore_errors=True)


@pytest.fixture(scope="session")
def app_client(temp_dirs):
	# Set env before importing app
	os.environ["STATE_DIR"] = temp_dirs["state"]
	os.environ["LOG_DIR"] = temp_dirs["logs"]
	os.environ["JWT_SECRET"] = "test_secret"
	os.environ["GEMINI_API_KEY"] = ""
	from utils.config import get_settings
	from utils.repository import get_document_repository, get_user_repository
	from services.pipeline import get_pipeline
	for cached in (get_settings, get_document_repository, get_user_repository, get_pipeline):
		cached.cache_clear()
	# Import app fresh
	import main as main_module
	importlib.reload(main_module)
	app = main_module.app
	client = TestClient(app)
	return client


@pytest.fixture(autouse=True)
def reset_state(temp_dirs):
	# Clear persisted users and documents between tests
	for root, dirs, files in os.walk(temp_dirs["state"]):
		for name in files:
			try:
				os.unlink(os.path.join(root, name))
			except FileNotFoundError:
				pass
	yield


@pytest.fixture
def fake_store():
	return FakeObjectStore()


@pytest.fixture
def fake_extractor():
	return FakeExtractor()


@pytest.fixture
def pipeline(app_client, temp_dirs, fake_store, fake_extractor):
	"""Pipeline wired to in-memory collaborators and installed into the app."""
	from services.pipeline import IngestionPipeline, get_pipeline
	from utils.repository import DocumentRepository
	pipe = IngestionPipeline(
		store=fake_store,
		repository=DocumentRepository(temp_dirs["state"]),
		extractor=fake_extractor,
	)
	app_client.app.dependency_overrides[get_pipeline] = lambda: pipe
	yield pipe
	app_client.app.dependency_overrides.pop(get_pipeline, None)


def register_and_login(client: TestClient, email: str = "user@example.com", password: str = "Passw0rd!", name: str = "Test User") -> str:
	resp = client.post("/auth/signup", json={"name": name, "email": email, "password": password})
	assert resp.status_code in (201, 409)
	resp = client.post("/auth/login", json={"email": email, "password": password})
	assert resp.status_code == 200, resp.text
	return resp.json()["data"]["access_token"]


def auth_headers(client: TestClient, email: str = "user@example.com") -> dict:
	return {"Authorization": f"Bearer {register_and_login(client, email=email)}"}
