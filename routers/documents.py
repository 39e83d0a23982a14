from fastapi import APIRouter, Request, UploadFile, File, Depends, Security
from fastapi.responses import StreamingResponse
from fastapi.routing import APIRoute
from starlette.background import BackgroundTask
from typing import Callable, Optional
from urllib.parse import quote

from models.document import DocumentSummary
from services.pipeline import IngestionPipeline, get_pipeline
from utils.errors import ValidationError
from utils.jwt import get_current_user_id
from utils.response import api_response
import logging

router = APIRouter(prefix="/documents", tags=["documents"])
logger = logging.getLogger("api.documents")


class UploadSizeLimitRoute(APIRoute):
	"""Checks the declared Content-Length before FastAPI parses the multipart body."""

	def get_route_handler(self) -> Callable:
		handler = super().get_route_handler()

		async def limited_handler(request: Request):
			length = request.headers.get("content-length")
			if length and length.isdigit():
				provider = request.app.dependency_overrides.get(get_pipeline, get_pipeline)
				provider().check_request_length(int(length))
			return await handler(request)

		return limited_handler


def _content_disposition(title: str) -> str:
	fallback = title.encode("ascii", "replace").decode("ascii").replace("\\", "\\\\").replace('"', '\\"')
	value = f'inline; filename="{fallback}"'
	if fallback != title:
		value += f"; filename*=UTF-8''{quote(title)}"
	return value


def upload_document(
	pdf: Optional[UploadFile] = File(None),
	user_id: str = Security(get_current_user_id),
	pipeline: IngestionPipeline = Depends(get_pipeline),
):
	if pdf is None:
		logger.warning("upload_rejected", extra={"user_id": user_id, "reason": "missing_file"})
		raise ValidationError("No file was uploaded.")
	document = pipeline.ingest(user_id, pdf.filename, pdf.content_type, pdf.size, pdf.file)
	logger.info("upload_accepted", extra={"doc_id": document.id, "user_id": user_id, "entities": len(document.entities)})
	return api_response(
		data=DocumentSummary.from_document(document).model_dump(by_alias=True, mode="json"),
		message="Document uploaded and processed successfully.",
		status_code=201,
	)


router.add_api_route("/upload", upload_document, methods=["POST"], route_class_override=UploadSizeLimitRoute)


@router.get("")
def list_documents(
	user_id: str = Security(get_current_user_id),
	pipeline: IngestionPipeline = Depends(get_pipeline),
):
	documents = pipeline.list_documents(user_id)
	logger.info("documents_listed", extra={"user_id": user_id, "returned": len(documents)})
	return api_response(
		data=[d.model_dump(by_alias=True, mode="json") for d in documents],
		message="Documents fetched successfully.",
		status_code=200,
	)


@router.get("/{doc_id}/download")
def download_document(
	doc_id: str,
	user_id: str = Security(get_current_user_id),
	pipeline: IngestionPipeline = Depends(get_pipeline),
):
	document, iterator, metadata, closer = pipeline.open_download(user_id, doc_id)
	headers = {
		"Content-Disposition": _content_disposition(document.title),
		"Cache-Control": "no-cache",
	}
	if metadata.get("content_length") is not None:
		headers["Content-Length"] = str(metadata["content_length"])
	return StreamingResponse(
		iterator(),
		media_type="application/pdf",
		headers=headers,
		background=BackgroundTask(closer),
	)


@router.get("/{doc_id}")
def get_document(
	doc_id: str,
	user_id: str = Security(get_current_user_id),
	pipeline: IngestionPipeline = Depends(get_pipeline),
):
	document = pipeline.get_document(user_id, doc_id)
	return api_response(
		data=document.model_dump(by_alias=True, mode="json"),
		message="Document fetched successfully.",
		status_code=200,
	)


@router.delete("/{doc_id}")
def delete_document(
	doc_id: str,
	user_id: str = Security(get_current_user_id),
	pipeline: IngestionPipeline = Depends(get_pipeline),
):
	pipeline.delete_document(user_id, doc_id)
	return api_response(data={"id": doc_id}, message="Document deleted successfully!", status_code=200)
