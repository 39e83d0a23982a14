from fastapi.testclient import TestClient
from conftest import auth_headers, make_pdf
from models.document import Entity, EntityType


def _upload(client, headers, name="report.pdf", content=None, mime="application/pdf"):
	content = make_pdf() if content is None else content
	return client.post("/documents/upload", headers=headers, files={"pdf": (name, content, mime)})


def test_upload_requires_auth(app_client: TestClient, pipeline, fake_store):
	resp = app_client.post("/documents/upload", files={"pdf": ("a.pdf", make_pdf(), "application/pdf")})
	assert resp.status_code == 401
	assert fake_store.calls == []


def test_upload_non_pdf_rejected_before_storage(app_client: TestClient, pipeline, fake_store):
	headers = auth_headers(app_client)
	resp = _upload(app_client, headers, name="notes.txt", content=b"hello", mime="text/plain")
	assert resp.status_code == 400
	assert resp.json()["message"] == "The uploaded file is not a valid PDF document."
	assert fake_store.calls == []


def test_upload_missing_file(app_client: TestClient, pipeline, fake_store):
	headers = auth_headers(app_client)
	resp = app_client.post("/documents/upload", headers=headers, files={"file": ("a.pdf", make_pdf(), "application/pdf")})
	assert resp.status_code == 400
	assert resp.json()["message"] == "No file was uploaded."
	assert fake_store.calls == []


def test_upload_too_large(app_client: TestClient, pipeline, fake_store):
	pipeline.max_upload_bytes = 1024
	headers = auth_headers(app_client)
	resp = _upload(app_client, headers, content=b"%PDF-1.4\n" + b"x" * 4096)
	assert resp.status_code == 400
	assert "File too large" in resp.json()["message"]
	assert fake_store.calls == []


def test_oversized_body_rejected_before_form_parsing(app_client: TestClient, pipeline, fake_store):
	from services.pipeline import MULTIPART_OVERHEAD_BYTES

	pipeline.max_upload_bytes = 1024
	headers = auth_headers(app_client)
	# A parsed form would fail the content-type check first
	resp = _upload(app_client, headers, name="big.txt", content=b"x" * (MULTIPART_OVERHEAD_BYTES + 4096), mime="text/plain")
	assert resp.status_code == 400
	body = resp.json()
	assert body["message"] == "File too large. Max 0MB allowed"
	assert body["data"] is None
	assert fake_store.calls == []


def test_upload_two_page_pdf_end_to_end(app_client: TestClient, pipeline, fake_store):
	headers = auth_headers(app_client)
	resp = _upload(app_client, headers, name="report.pdf")
	assert resp.status_code == 201, resp.text
	body = resp.json()
	assert body["status_code"] == 201
	data = body["data"]
	assert data["title"] == "report.pdf"
	assert data["entitiesCount"] >= 0
	assert data["storageUrl"].startswith("https://storage.test/pdf-")
	assert "rawText" not in data and "cleanedText" not in data

	listed = app_client.get("/documents", headers=headers)
	assert listed.status_code == 200
	assert data["id"] in [d["id"] for d in listed.json()["data"]]


def test_upload_annotates_entities(app_client: TestClient, pipeline, fake_extractor):
	pipeline.text_extractor = lambda payload: "Ada   Lovelace\nworked in\tLondon"
	fake_extractor.entities = [
		Entity(text="Ada Lovelace", type=EntityType.PERSON),
		Entity(text="London", type=EntityType.LOCATION),
	]
	headers = auth_headers(app_client)
	data = _upload(app_client, headers).json()["data"]
	assert data["entitiesCount"] == 2
	assert data["cleanedTextPreview"] == "Ada Lovelace worked in London"
	assert fake_extractor.calls == ["Ada Lovelace worked in London"]

	full = app_client.get(f"/documents/{data['id']}", headers=headers).json()["data"]
	assert full["entities"] == [{"text": "Ada Lovelace", "type": "PERSON"}, {"text": "London", "type": "LOCATION"}]
	assert full["rawText"] == "Ada   Lovelace\nworked in\tLondon"


def test_upload_storage_failure_creates_nothing(app_client: TestClient, pipeline, fake_store):
	fake_store.fail_upload = True
	headers = auth_headers(app_client)
	resp = _upload(app_client, headers)
	assert resp.status_code == 502
	assert resp.json()["message"] == "Storage service failure"
	assert app_client.get("/documents", headers=headers).json()["data"] == []


def test_get_document_of_other_user_is_forbidden(app_client: TestClient, pipeline):
	owner = auth_headers(app_client, email="a@example.com")
	intruder = auth_headers(app_client, email="b@example.com")
	doc_id = _upload(app_client, owner).json()["data"]["id"]

	resp = app_client.get(f"/documents/{doc_id}", headers=intruder)
	assert resp.status_code == 403
	assert resp.json()["data"] is None
	assert app_client.get(f"/documents/{doc_id}/download", headers=intruder).status_code == 403
	assert app_client.delete(f"/documents/{doc_id}", headers=intruder).status_code == 403
	assert app_client.get("/documents", headers=intruder).json()["data"] == []


def test_get_unknown_and_malformed_ids(app_client: TestClient, pipeline):
	headers = auth_headers(app_client)
	assert app_client.get("/documents/" + "0" * 32, headers=headers).status_code == 404
	resp = app_client.get("/documents/not-an-id", headers=headers)
	assert resp.status_code == 400
	assert resp.json()["message"] == "Invalid document ID"


def test_x_auth_token_header_accepted(app_client: TestClient, pipeline):
	token = auth_headers(app_client)["Authorization"].split(" ", 1)[1]
	resp = app_client.get("/documents", headers={"x-auth-token": token})
	assert resp.status_code == 200


def test_download_streams_pdf(app_client: TestClient, pipeline):
	headers = auth_headers(app_client)
	content = make_pdf(pages=1)
	doc_id = _upload(app_client, headers, content=content).json()["data"]["id"]
	resp = app_client.get(f"/documents/{doc_id}/download", headers=headers)
	assert resp.status_code == 200
	assert resp.headers["content-type"] == "application/pdf"
	assert resp.headers["content-disposition"] == 'inline; filename="report.pdf"'
	assert resp.content == content


def test_download_non_ascii_filename(app_client: TestClient, pipeline):
	headers = auth_headers(app_client)
	doc_id = _upload(app_client, headers, name="\u62a5\u544a.pdf").json()["data"]["id"]
	resp = app_client.get(f"/documents/{doc_id}/download", headers=headers)
	assert resp.status_code == 200
	disposition = resp.headers["content-disposition"]
	assert disposition.startswith('inline; filename="??.pdf"')
	assert "filename*=UTF-8''%E6%8A%A5%E5%91%8A.pdf" in disposition


def test_content_disposition_escapes_quotes():
	from routers.documents import _content_disposition

	assert _content_disposition('my "final" report.pdf') == (
		'inline; filename="my \\"final\\" report.pdf"; filename*=UTF-8\'\'my%20%22final%22%20report.pdf'
	)
	assert _content_disposition("plain.pdf") == 'inline; filename="plain.pdf"'


def test_delete_removes_record_and_blob(app_client: TestClient, pipeline, fake_store):
	headers = auth_headers(app_client)
	doc_id = _upload(app_client, headers).json()["data"]["id"]
	resp = app_client.delete(f"/documents/{doc_id}", headers=headers)
	assert resp.status_code == 200
	assert resp.json()["message"] == "Document deleted successfully!"
	assert fake_store.objects == {}
	assert app_client.get(f"/documents/{doc_id}", headers=headers).status_code == 404


def test_delete_survives_storage_failure(app_client: TestClient, pipeline, fake_store):
	headers = auth_headers(app_client)
	doc_id = _upload(app_client, headers).json()["data"]["id"]
	fake_store.fail_delete = True
	resp = app_client.delete(f"/documents/{doc_id}", headers=headers)
	assert resp.status_code == 200
	assert fake_store.calls[-1][0] == "delete"
	assert app_client.get(f"/documents/{doc_id}", headers=headers).status_code == 404
	assert doc_id not in [d["id"] for d in app_client.get("/documents", headers=headers).json()["data"]]
